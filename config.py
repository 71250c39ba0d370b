import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Payment Gateway API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 5000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Security settings
    rate_limit_per_minute: int = 30
    verify_webhook_signature: bool = True
    webhook_secret: Optional[str] = None  # Falls back to paystack_secret_key
    expose_error_details: bool = True

    # CORS settings
    allowed_origins: List[str] = ["*"]

    # Payment provider settings
    paystack_secret_key: str = ""
    provider_base_url: str = "https://api.paystack.co"
    provider_timeout: float = 30.0
    demo_api_url: str = "https://httpbin.org"

    # Storage settings
    data_dir: str = "stores"

    # Demo payload defaults (used when the request body omits a field)
    default_email: str = "test@example.com"
    default_amount: float = 1000
    default_first_name: str = "Demo"
    default_last_name: str = "Customer"
    default_phone: str = "+2348000000000"
    default_customer_code: str = "CUS_demo"
    default_preferred_bank: str = "test-bank"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def signing_secret(self) -> str:
        """Secret used to verify inbound webhook signatures."""
        return self.webhook_secret or self.paystack_secret_key


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance for the current APP_ENV."""
    return get_settings_for_environment(os.getenv("APP_ENV", "development"))


# Environment-specific configurations
class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: str = "text"
    rate_limit_per_minute: int = 100  # More lenient for development


class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: List[str] = []  # Must be specified in production
    expose_error_details: bool = False
    rate_limit_per_minute: int = 30


class TestingSettings(Settings):
    debug: bool = True
    log_level: str = "WARNING"  # Reduce noise in tests
    rate_limit_per_minute: int = 1000  # No rate limiting in tests
    paystack_secret_key: str = "sk_test_secret"


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
