from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openrouter_api_key: str = ""
    llm_model: str = "google/gemini-2.0-flash-001"
    llm_base_url: str = "https://openrouter.ai/api/v1"
    db_path: str = "meubolso.json"
    # base64 AES-256 key; when set, transaction fields are encrypted at rest
    encryption_key: str = ""

    waha_api_url: str = "http://waha:3000"
    waha_session: str = "default"
    waha_api_key: str = ""

    timezone: str = "America/Sao_Paulo"
    default_country_code: str = "55"

    # Free plan quota; limits at or above the threshold count as unlimited
    monthly_message_limit: int = 30
    unlimited_threshold: int = 999999
    upgrade_url: str = "https://meubolso.app/planos"

    port: int = 4000
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
