"""
Feedback Intelligence Application Configuration
================================================

PURPOSE:
    Pydantic-Settings based configuration for the feedback intake API.
    All settings can be overridden via environment variables (FEEDBACK_INTEL_ prefix).
    The relational store is selected separately through DATABASE_URL.
"""

import logging
from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings
from typing import List, Optional, Literal

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime settings for the API, the analysis pipeline and search."""

    app_name: str = "Feedback Intelligence"
    debug: bool = False

    # Local storage
    data_directory: str = "/data"
    blob_directory: str = "/data/blobs"   # Raw feedback payloads (JSON, one file per item)
    log_directory: str = "logs"

    # Qdrant settings
    qdrant_host: str = "qdrant"
    qdrant_port: int = 6333
    qdrant_url: Optional[str] = None      # Overrides host/port when set (e.g. Qdrant Cloud)
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "feedback"
    qdrant_timeout_s: float = 10.0

    # Inference models
    embedding_model: str = "BAAI/bge-base-en-v1.5"
    embedding_dimensions: int = 768
    sentiment_model: str = "distilbert-base-uncased-finetuned-sst-2-english"
    inference_timeout_s: float = 30.0

    # Search
    search_top_k: int = 10
    keyword_search_limit: int = 10

    # Workflow engine (per-step retry + checkpointing)
    workflow_max_attempts: int = 3
    workflow_step_timeout_s: float = 60.0
    workflow_backoff_base_s: float = 0.5
    workflow_backoff_max_s: float = 10.0

    # LLM insights for /api/analyze (optional)
    llm_provider: Literal["openai", "none"] = "none"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 200
    openai_api_key: Optional[str] = None

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000", "http://localhost:8080"]

    class Config:
        env_file = ".env"
        env_prefix = "FEEDBACK_INTEL_"

    @field_validator("workflow_step_timeout_s")
    @classmethod
    def validate_step_timeout(cls, v: float, info: ValidationInfo) -> float:
        """A hung inference call must time out inside the step that made it."""
        inference_timeout = info.data.get("inference_timeout_s")
        if inference_timeout is not None and v <= inference_timeout:
            raise ValueError("workflow_step_timeout_s must be greater than inference_timeout_s")
        return v

    @property
    def llm_enabled(self) -> bool:
        """True when an LLM provider is selected and has credentials."""
        return self.llm_provider == "openai" and bool(self.openai_api_key)


settings = Settings()
