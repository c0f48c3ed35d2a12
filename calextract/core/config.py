from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ALLOWED_ENV_FIELD_NAMES = frozenset(
    {
        "app_name",
        "app_env",
        "app_version",
        "api_prefix",
        "allowed_origins",
        "inference_provider",
        "gemini_api_key",
        "gemini_model",
        "gemini_api_timeout_seconds",
        "openai_api_key",
        "openai_model",
        "openai_api_timeout_seconds",
        "inference_max_input_chars",
        "minimum_event_year",
        "default_timezone",
        "google_places_api_key",
        "geocoding_timeout_seconds",
    },
)


class Settings(BaseSettings):
    app_name: str = "Calendar Event Extractor"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    allowed_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:7860",
        "http://127.0.0.1:7860",
    ]
    inference_provider: str = "openai"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_timeout_seconds: float = 30.0
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_api_timeout_seconds: float = 30.0
    inference_max_input_chars: int = 8000
    minimum_event_year: int | None = None
    default_timezone: str = "UTC"
    google_places_api_key: str = ""
    geocoding_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def _filter_allowed_env_fields(source):
            return {
                field_name: raw_value
                for field_name, raw_value in source().items()
                if field_name in ALLOWED_ENV_FIELD_NAMES
            }

        return (
            init_settings,
            lambda: _filter_allowed_env_fields(env_settings),
            lambda: _filter_allowed_env_fields(dotenv_settings),
            file_secret_settings,
        )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("inference_provider", mode="before")
    @classmethod
    def normalize_inference_provider(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("minimum_event_year", mode="before")
    @classmethod
    def normalize_minimum_event_year(cls, value: int | str | None) -> int | None:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return int(value)

    @field_validator("gemini_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_gemini_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 30.0
        return parsed_value

    @field_validator("openai_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_openai_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 30.0
        return parsed_value

    @field_validator("geocoding_timeout_seconds", mode="before")
    @classmethod
    def normalize_geocoding_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 5.0
        return parsed_value

    @field_validator("inference_max_input_chars", mode="before")
    @classmethod
    def normalize_inference_max_input_chars(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 8000
        return parsed_value


@lru_cache
def get_settings() -> Settings:
    return Settings()
