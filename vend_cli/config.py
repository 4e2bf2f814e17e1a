"""Configuration models and settings for Vend API access."""

from pathlib import Path
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseModel):
    """Connection details for a single Vend store.

    Immutable once built so one instance can be shared between threads
    fetching different resources at the same time.
    """

    model_config = ConfigDict(frozen=True)

    domain_prefix: str
    token: str
    timezone: Optional[str] = None

    service_host: str = "vendhq.com"
    api_path: str = "api/2.0"
    user_agent: str = "Vend CLI"
    timeout: float = Field(default=30.0, gt=0)

    # None keeps retrying forever
    max_attempts: Optional[int] = Field(default=None, ge=1)
    deadline: Optional[float] = Field(default=None, gt=0)

    @field_validator("domain_prefix", "token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @property
    def base_url(self) -> str:
        """Root URL of the store, e.g. https://mystore.vendhq.com."""
        return f"https://{self.domain_prefix}.{self.service_host}"

    @property
    def api_url(self) -> str:
        """Root URL of the 2.0 API for the store."""
        return f"{self.base_url}/{self.api_path.strip('/')}"


class Settings(BaseSettings):
    """Settings loaded from VEND_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VEND_",
        extra="ignore",
    )

    domain_prefix: str = ""
    token: str = ""
    timezone: Optional[str] = None
    output_dir: Path = Field(default_factory=lambda: Path("."))
    concurrency: int = Field(default=4, ge=1, le=20)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    deadline: Optional[float] = Field(default=None, gt=0)

    def client_config(self) -> ClientConfig:
        """Build the client configuration, failing on missing credentials."""
        if not self.domain_prefix or not self.token:
            raise ValueError(
                "A domain prefix and token are required "
                "(--domain/--token or VEND_DOMAIN_PREFIX/VEND_TOKEN)"
            )
        return ClientConfig(
            domain_prefix=self.domain_prefix,
            token=self.token,
            timezone=self.timezone,
            max_attempts=self.max_attempts,
            deadline=self.deadline,
        )


def load_settings(env_file: Path = Path(".env"), **overrides) -> Settings:
    """Load settings from the environment after reading a .env file.

    Variables already in the environment win over the file, and
    ``overrides`` (command line options) win over both.
    """
    load_dotenv(env_file)
    return Settings(**overrides)


class FailedRequest(BaseModel):
    """A single record that could not be mutated."""

    entity_id: str
    operation: Literal["delete", "post", "put"]
    reason: str
    status_code: Optional[int] = None


class RunStats(BaseModel):
    """Statistics for a bulk mutation run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def add_success(self) -> None:
        self.total += 1
        self.succeeded += 1

    def add_failure(self) -> None:
        self.total += 1
        self.failed += 1

    def add_skip(self) -> None:
        self.total += 1
        self.skipped += 1
