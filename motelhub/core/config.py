"""
Application settings loaded from environment variables (.env).
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_SECRET_KEYS = ("", "changeme")
# Environments allowed to run without real secrets
LENIENT_ENVS = ("development", "test")
GATEWAY_SECRETS = (
    "momo_access_key",
    "momo_secret_key",
    "vnpay_hash_secret",
    "zalopay_key1",
    "zalopay_key2",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "development"
    app_url: str = "http://localhost:3000"
    database_url: str | None = None
    secret_key: str = "changeme"
    allowed_origins: str = "http://localhost:3000"

    # --- Online payments ---
    payment_intent_ttl_minutes: int = 15
    # Only honoured when app_env == "development"
    payment_signature_bypass: bool = False

    momo_endpoint: str = "https://test-payment.momo.vn/v2/gateway/api/create"
    momo_partner_code: str = "DEMO"
    momo_access_key: str = ""
    momo_secret_key: str = ""

    vnpay_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    vnpay_tmn_code: str = "DEMO"
    vnpay_hash_secret: str = ""

    zalopay_endpoint: str = "https://sb-openapi.zalopay.vn/v2/create"
    zalopay_app_id: str = "2553"
    zalopay_key1: str = ""
    zalopay_key2: str = ""

    audit_log_dir: str = "logs"

    # --- Scheduler ---
    overdue_run_hour: str = "01:00"

    @model_validator(mode="after")
    def check_secrets(self) -> "Settings":
        """Outside development and test, the placeholder SECRET_KEY and empty gateway keys are fatal."""
        if self.app_env in LENIENT_ENVS:
            return self
        missing = [name.upper() for name in GATEWAY_SECRETS if not getattr(self, name)]
        if self.secret_key in INSECURE_SECRET_KEYS:
            missing.insert(0, "SECRET_KEY")
        if missing:
            raise ValueError(f"FATAL: not configured for {self.app_env}: {', '.join(missing)}")
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def signature_bypass_enabled(self) -> bool:
        return self.payment_signature_bypass and self.app_env == "development"

    @property
    def ipn_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/payments/online/callback"

    @property
    def default_return_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/payment/result"


@lru_cache
def get_settings() -> Settings:
    return Settings()
