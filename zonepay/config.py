"""Application configuration via environment variables."""

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from zonepay.engine.errors import ConfigurationError


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./zonepay.db"
    log_level: str = "INFO"
    provider: str = "momo"  # "momo" or "mock"
    unresolved_completion_status: str = "unknown"
    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 100  # Simulated provider latency

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


class MomoSettings(BaseSettings):
    """
    MTN MoMo collection API credentials and defaults.

    Read from MOMO_* environment variables. Constructed once at startup and
    handed to the client explicitly; nothing else reads it.
    """

    base_url: str
    api_user: str
    api_key: str
    primary_key: str  # Ocp-Apim-Subscription-Key
    target_env: str
    callback_host: str = ""
    default_country_code: str = "250"
    default_currency: str = "EUR"
    timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_base_delay: float = 0.5

    model_config = {
        "env_prefix": "MOMO_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("base_url", "api_user", "api_key", "primary_key", "target_env")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("default_country_code")
    @classmethod
    def _strip_plus(cls, value: str) -> str:
        return value.strip().lstrip("+")


def load_momo_settings(**overrides) -> MomoSettings:
    """
    Load provider settings eagerly, failing with every missing variable named.

    Raises:
        ConfigurationError: If a required MOMO_* value is missing or blank.
    """
    try:
        return MomoSettings(**overrides)
    except ValidationError as e:
        names = sorted({f"MOMO_{str(err['loc'][0]).upper()}" for err in e.errors() if err.get("loc")})
        raise ConfigurationError(f"Missing required MoMo env vars: {', '.join(names)}") from e


settings = Settings()
