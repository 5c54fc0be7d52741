# backend/vendsys/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/vendsys.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///vendsys.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public URLs: BACKEND_URL builds the webhook callback, FRONTEND_URL is the
    # CORS origin and the base for links inside alert emails.
    BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:5000")
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    # Payment gateway (Mercado Pago)
    MERCADOPAGO_ACCESS_TOKEN = os.environ.get("MERCADOPAGO_ACCESS_TOKEN", "")
    MERCADOPAGO_API_BASE = os.environ.get("MERCADOPAGO_API_BASE", "https://api.mercadopago.com")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "MXN")
    GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10"))

    # Alert mail (SendGrid). Without an API key alerts are only logged.
    SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY", "")
    SENDGRID_API_BASE = os.environ.get("SENDGRID_API_BASE", "https://api.sendgrid.com")
    ALERT_EMAIL_SENDER = os.environ.get("ALERT_EMAIL_SENDER", "alertas@vending-system.com")

    # Liveness monitor
    HEARTBEAT_TOLERANCE_MINUTES = int(os.environ.get("HEARTBEAT_TOLERANCE_MINUTES", "7"))
    MONITOR_INTERVAL_MINUTES = int(os.environ.get("MONITOR_INTERVAL_MINUTES", "5"))
    MONITOR_SCHEDULER_ENABLED = _env_bool("MONITOR_SCHEDULER_ENABLED", False)
