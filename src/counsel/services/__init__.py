"""Remote service clients: legal AI API, refinement and chat models."""

from counsel.services.isaacus import IsaacusClient
from counsel.services.llm import LLMService
from counsel.services.refinement import RelevanceRefiner, derive_risk_level


__all__ = ["IsaacusClient", "LLMService", "RelevanceRefiner", "derive_risk_level"]
