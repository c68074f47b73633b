"""
Application configuration via environment variables.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class BackendSettings(BaseModel):
    """One scoring backend as written in the BACKENDS environment variable (JSON list)."""

    backend_id: str
    display_name: str
    model_id: str
    adapter: str = "converse"
    endpoint: str = ""  # empty = Bedrock runtime endpoint for aws_region
    api_key: str = ""  # empty = bedrock_api_key
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None


class Settings(BaseSettings):
    """Application settings loaded from environment / .env file."""

    # App
    app_name: str = "Evidence Grader"
    debug: bool = False

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Bedrock
    bedrock_api_key: str = ""
    aws_region: str = "us-east-2"

    # Scoring backends; empty = the built-in Bedrock library
    backends: List[BackendSettings] = []

    # Per-backend call policy
    backend_timeout_seconds: float = 90.0
    backend_max_tokens: int = 1024
    backend_temperature: float = 0.7

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def bedrock_endpoint(self) -> str:
        return f"https://bedrock-runtime.{self.aws_region}.amazonaws.com"


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process."""
    return Settings()
