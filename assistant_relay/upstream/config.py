"""Upstream configuration with environment variable loading.

Pydantic-based configuration for the OpenAI-backed upstream adapter.
Supports OpenAI and OpenAI-compatible APIs via custom base URL.
"""

import logging
import os
from enum import Enum

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class UpstreamMode(str, Enum):
    """Deployment variants of the upstream adapter."""

    RETRIEVAL = "retrieval"
    CONFIRMED_SOURCE = "confirmed_source"
    PLAIN = "plain"


class UpstreamConfig(BaseModel):
    """Configuration for the upstream chat backend.

    Attributes:
        api_key: API key for model access.
        base_url: API base URL (None for OpenAI default).
        model_name: Model identifier used for plain completions.
        assistant_id: Assistant used for retrieval runs.
        vector_store_id: Vector store backing the document collection.
        mode: Which retrieval variant this deployment runs.
        temperature: Sampling temperature for regular requests.
        detailed_temperature: Sampling temperature when detailed mode is on.
        max_tokens: Maximum tokens in generated response.
        poll_interval: Seconds between run status checks.
        max_poll_attempts: Status checks before a polled run is abandoned.
        chunk_size: Characters per synthetic delta for polled answers.
        chunk_delay: Seconds between synthetic deltas.
    """

    api_key: str = Field(
        default_factory=lambda: os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", "")),
        description="API key for LLM provider",
    )
    base_url: str | None = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL") or None,
        description="API base URL (None for OpenAI default)",
    )
    model_name: str = Field(
        default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"),
        description="Model to use",
    )
    assistant_id: str | None = Field(
        default_factory=lambda: os.getenv("ASSISTANT_ID") or None,
        description="Assistant identifier for retrieval runs",
    )
    vector_store_id: str | None = Field(
        default_factory=lambda: os.getenv("VECTOR_STORE_ID") or None,
        description="Vector store holding uploaded documents",
    )
    mode: UpstreamMode = Field(
        default_factory=lambda: UpstreamMode(os.getenv("UPSTREAM_MODE", "retrieval").lower()),
        description="Retrieval variant for requests without an attached file",
    )
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    detailed_temperature: float = Field(default=0.9, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1, le=128000)
    poll_interval: float = Field(default=1.0, gt=0.0)
    max_poll_attempts: int = Field(default=60, ge=1)
    chunk_size: int = Field(default=512, ge=1)
    chunk_delay: float = Field(default=0.02, ge=0.0)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate that API key is provided and non-empty."""
        if not v or not v.strip():
            raise ValueError(
                "API key required. Set LLM_API_KEY or OPENAI_API_KEY in .env"
            )
        return v.strip()

    @model_validator(mode="after")
    def require_assistant_for_retrieval(self) -> "UpstreamConfig":
        """Fall back to plain completions when no assistant is configured."""
        if self.mode is not UpstreamMode.PLAIN and not self.assistant_id:
            logger.warning(
                f"UPSTREAM_MODE={self.mode.value} needs ASSISTANT_ID; using plain completions"
            )
            self.mode = UpstreamMode.PLAIN
        return self

    def temperature_for(self, detailed: bool) -> float:
        """Pick the sampling temperature for a request."""
        return self.detailed_temperature if detailed else self.temperature


def get_upstream_config() -> UpstreamConfig:
    """Create upstream configuration from environment.

    Returns:
        Configured UpstreamConfig instance.

    Raises:
        ValueError: If no API key is set.
    """
    return UpstreamConfig()
