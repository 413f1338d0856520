"""Configuration management using pydantic-settings."""

from counsel.config.settings import CounselSettings, get_settings

__all__ = ["CounselSettings", "get_settings"]
