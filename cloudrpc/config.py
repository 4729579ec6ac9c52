"""Client configuration using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .batch_manager import MAX_BATCH_SIZE
from .options import WaitPolicy
from .retry_policy import RetryPolicy


class ClientSettings(BaseSettings):
    """Client settings loaded from ``CLOUDRPC_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDRPC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Transport
    base_url: str = "http://localhost:8080"
    request_timeout: float = Field(default=30.0, gt=0)

    # Retries
    max_attempts: int = Field(default=6, ge=1)
    initial_backoff: float = Field(default=1.0, ge=0)
    max_backoff: float = Field(default=32.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    total_timeout: float = Field(default=50.0, ge=0)  # 0 disables the limit
    jitter: bool = True

    # Operation polling
    check_every: float = Field(default=0.5, ge=0)
    wait_timeout: float = Field(default=0.0, ge=0)  # 0 waits forever

    # Batches
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1)
    batch_workers: int = Field(default=10, ge=1)

    # Logging
    verbose: bool = False
    log_json: bool = False

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff=self.initial_backoff,
            max_backoff=self.max_backoff,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.jitter,
            total_timeout=self.total_timeout,
        )

    def wait_policy(self) -> WaitPolicy:
        return WaitPolicy(check_every=self.check_every, timeout=self.wait_timeout)
