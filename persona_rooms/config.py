"""Framework settings (LLM connection, storage location, retention policy).

Values come from the environment, after loading an optional .env file:

    LLM_PROVIDER                    koboldcpp | openai   (default koboldcpp)
    LLM_PROVIDER_URL                backend base URL
    LLM_API_KEY                     bearer token, may be empty
    LLM_MODEL_SMALL/MEDIUM/LARGE    model names per model class (openai only)
    LLM_EMBEDDING_MODEL             embedding model; empty disables embeddings
    LLM_TIMEOUT                     HTTP timeout in seconds
    DATA_DIR                        JSON storage directory; empty = in-memory
    RETAIN_FINISHED_CONVERSATIONS   keep finished rooms in memory (1/true/yes)
    LOG_LEVEL                       logging level name
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

ProviderName = Literal["koboldcpp", "openai"]

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    provider: ProviderName = "koboldcpp"
    provider_url: str = "http://localhost:5001"
    api_key: str = ""
    model_small: str = ""
    model_medium: str = ""
    model_large: str = ""
    embedding_model: str = ""
    timeout: float = 120.0
    data_dir: Path | None = None
    retain_finished: bool = False
    log_level: str = "INFO"


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from the environment. Unset variables keep defaults."""
    load_dotenv(env_file or Path.cwd() / ".env")
    defaults = Settings()
    data_dir = os.getenv("DATA_DIR", "")
    return Settings(
        provider=os.getenv("LLM_PROVIDER", defaults.provider),
        provider_url=os.getenv("LLM_PROVIDER_URL", defaults.provider_url),
        api_key=os.getenv("LLM_API_KEY", defaults.api_key),
        model_small=os.getenv("LLM_MODEL_SMALL", defaults.model_small),
        model_medium=os.getenv("LLM_MODEL_MEDIUM", defaults.model_medium),
        model_large=os.getenv("LLM_MODEL_LARGE", defaults.model_large),
        embedding_model=os.getenv("LLM_EMBEDDING_MODEL", defaults.embedding_model),
        timeout=float(os.getenv("LLM_TIMEOUT", defaults.timeout)),
        data_dir=Path(data_dir) if data_dir else None,
        retain_finished=os.getenv("RETAIN_FINISHED_CONVERSATIONS", "").strip().lower() in _TRUTHY,
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
