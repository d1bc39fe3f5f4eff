# courier/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env locally (safe in prod too)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "production").strip().lower()
    port: int = _env_int("PORT", 5000)
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    database_url: str = os.getenv("DATABASE_URL", "").strip()

    smtp_host: str = os.getenv("SMTP_HOST", "smtp.gmail.com").strip()
    smtp_port: int = _env_int("SMTP_PORT", 587)
    smtp_user: str = os.getenv("SMTP_USER", "").strip()
    smtp_pass: str = os.getenv("SMTP_PASS", "").strip()
    smtp_from: str = os.getenv("SMTP_FROM", "info@noblespeedytrac.com").strip()

    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "").strip()
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()

    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "https://www.noblespeedytrac.com").strip().rstrip("/")
    currency_default: str = os.getenv("CURRENCY", "cad").strip().lower()

    company_name: str = "Noble Speedy Trac"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)


settings = Settings()
