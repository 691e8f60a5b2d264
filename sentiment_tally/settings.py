from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    """
    Environment-driven settings for classification + counter storage.
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # ---- Counter storage ----
    bucket: str = Field(default="sentiments-data", alias="SENTIMENT_BUCKET")
    counter_key: str = Field(default="sentiment.csv", alias="SENTIMENT_COUNTER_KEY")
    aws_region: Optional[str] = Field(default=None, alias="AWS_REGION")
    # Point at MinIO/LocalStack for local runs.
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")

    # "optimistic": conditional writes with retry.
    # "approximate": unguarded read-modify-write, can lose concurrent updates.
    consistency_mode: Literal["optimistic", "approximate"] = Field(
        default="optimistic", alias="COUNTER_CONSISTENCY_MODE"
    )
    max_update_attempts: int = Field(default=8, ge=1, alias="COUNTER_MAX_UPDATE_ATTEMPTS")
    backoff_base_sec: float = Field(default=0.05, ge=0.0, alias="COUNTER_BACKOFF_BASE_SEC")
    backoff_max_sec: float = Field(default=1.0, ge=0.0, alias="COUNTER_BACKOFF_MAX_SEC")

    # ---- Sentiment inference ----
    sentiment_model_path: str = Field(
        default="distilbert-base-uncased-finetuned-sst-2-english",
        alias="SENTIMENT_MODEL_PATH",
    )
    sentiment_model_version: str = Field(default="sst2-distilbert-v1", alias="SENTIMENT_MODEL_VERSION")
    sentiment_max_length: int = Field(default=512, ge=1, alias="SENTIMENT_MAX_LENGTH")

    # Device: "auto" | "cpu" | "cuda"
    sentiment_device: str = Field(default="auto", alias="SENTIMENT_DEVICE")

    # ---- Serving ----
    http_host: str = Field(default="0.0.0.0", alias="HTTP_HOST")
    http_port: int = Field(default=8080, alias="HTTP_PORT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> ServiceSettings:
    return ServiceSettings()
