"""Unit tests for CounselSettings validation."""

import pytest
from pydantic import ValidationError

from counsel.config import CounselSettings


@pytest.mark.unit
class TestCounselSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("LLM_PROVIDER", "VECTOR_BACKEND", "AGENT_MAX_STEPS", "SEARCH_THRESHOLD"):
            monkeypatch.delenv(name, raising=False)

        settings = CounselSettings(_env_file=None)

        assert settings.agent_max_steps == 15
        assert settings.search_threshold == 0.5
        assert settings.embedding_model == "kanon-2-embedder"
        assert settings.vector_backend == "memory"

    def test_reads_environment_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ISAACUS_API_KEY", "from-env")
        monkeypatch.setenv("AGENT_MAX_STEPS", "4")

        settings = CounselSettings(_env_file=None)

        assert settings.isaacus_api_key == "from-env"
        assert settings.agent_max_steps == 4

    def test_overlap_must_be_below_max(self) -> None:
        with pytest.raises(ValidationError, match="CHUNK_OVERLAP_CHARS"):
            CounselSettings(_env_file=None, chunk_max_chars=100, chunk_overlap_chars=100)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"llm_temperature": 2.5},
            {"search_threshold": 1.5},
            {"embedding_batch_size": 0},
            {"agent_max_steps": 0},
            {"llm_provider": "gemini"},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            CounselSettings(_env_file=None, **overrides)
