"""
Application configuration using pydantic-settings.
Loaded once at startup and handed to every component - nothing else reads the environment.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    sentry_dsn: str = ""
    admin_api_key: str = ""  # When set, /api/* requires X-Admin-Key

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Inbound webhook
    splynx_webhook_secret: str = ""
    require_valid_signature: bool = False  # True = reject unsigned/invalid webhooks with 401

    # Splynx (source system)
    splynx_api_url: str = ""
    splynx_api_key: str = ""
    splynx_api_secret: str = ""
    splynx_timeout_seconds: float = 10.0
    splynx_customer_list_limit: int = 1000

    # UISP (target system)
    uisp_api_url: str = ""
    uisp_crm_api_url: str = ""
    uisp_app_key: str = ""
    uisp_timeout_seconds: float = 30.0
    uisp_sync_timeout_seconds: float = 60.0
    uisp_default_payment_method_id: str = "ccff6158-de2e-45a2-af01-b973cab5cb5f"
    uisp_provider_name: str = "Splynx"
    uisp_utc_offset_hours: int = 3
    uisp_directory_search_limit: int = 1000
    uisp_sync_page_size: int = 100

    # Payments
    default_currency_code: str = "KES"
    direct_match_prefixes: str = "W"  # Comma-separated Splynx ID prefixes that equal the UISP userIdent
    persist_resolved_mappings: bool = False

    # Retry engine (forward-to-UISP)
    max_retries: int = 3
    retry_initial_delay_ms: int = 1000
    retry_max_delay_ms: int = 30000
    retry_backoff_multiplier: float = 2.0

    # Convex mirror
    convex_url: str = ""
    convex_deploy_key: str = ""
    convex_timeout_seconds: float = 10.0

    # Alerting
    alert_webhook_url: str = ""  # Discord/Slack webhook URL for critical alerts

    @property
    def direct_match_prefix_list(self) -> list[str]:
        return [p.strip().upper() for p in self.direct_match_prefixes.split(",") if p.strip()]

    @property
    def default_currency(self) -> str:
        return self.default_currency_code.upper()


@lru_cache()
def get_settings() -> Settings:
    return Settings()
