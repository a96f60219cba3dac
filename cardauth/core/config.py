import json
import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Dict, FrozenSet, List

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime configuration for the authorization service."""

    app_env: str = "development"
    default_provider: str = "sandbox"
    webhook_secrets: Dict[str, str] = field(default_factory=dict)
    webhook_ip_allowlist: List[str] = field(default_factory=list)
    webhook_tolerance_seconds: int = 300
    authorization_timeout_seconds: float = 3.0
    authorization_workers: int = 32

    velocity_window_minutes: int = 10
    velocity_max_transactions: int = 5
    geo_window_minutes: int = 60
    geo_max_distance_km: float = 500.0
    high_risk_mcc: FrozenSet[str] = frozenset({"7995", "7800", "7801", "7802"})

    default_cashback_rate: Decimal = Decimal("0.02")
    cashback_token: str = "CELO"

    idempotency_enabled: bool = False
    idempotency_ttl_seconds: int = 86400
    redis_url: str = "redis://localhost:6379/0"

    rate_limit_webhook: str = "6000/minute"
    rate_limit_storage_uri: str = "memory://"

    log_level: str = "INFO"
    log_format: str = "standard"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        secrets_str = os.getenv("WEBHOOK_SECRETS")
        webhook_secrets = {
            name.lower(): secret
            for name, secret in (json.loads(secrets_str) if secrets_str else {}).items()
        }

        high_risk = os.getenv("HIGH_RISK_MCC")

        return cls(
            app_env=os.getenv("APP_ENV", "development"),
            default_provider=os.getenv("CARD_PROVIDER", "sandbox"),
            webhook_secrets=webhook_secrets,
            webhook_ip_allowlist=_csv(os.getenv("WEBHOOK_IP_ALLOWLIST", "")),
            webhook_tolerance_seconds=int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300")),
            authorization_timeout_seconds=float(
                os.getenv("AUTHORIZATION_TIMEOUT_SECONDS", "3.0")
            ),
            authorization_workers=int(os.getenv("AUTHORIZATION_WORKERS", "32")),
            velocity_window_minutes=int(os.getenv("VELOCITY_WINDOW_MINUTES", "10")),
            velocity_max_transactions=int(os.getenv("VELOCITY_MAX_TRANSACTIONS", "5")),
            geo_window_minutes=int(os.getenv("GEO_WINDOW_MINUTES", "60")),
            geo_max_distance_km=float(os.getenv("GEO_MAX_DISTANCE_KM", "500")),
            high_risk_mcc=(
                frozenset(_csv(high_risk)) if high_risk else cls.high_risk_mcc
            ),
            default_cashback_rate=Decimal(os.getenv("DEFAULT_CASHBACK_RATE", "0.02")),
            cashback_token=(
                os.getenv("CASHBACK_TOKEN")
                or os.getenv("NEXT_PUBLIC_CASHBACK_TOKEN")
                or "CELO"
            ),
            idempotency_enabled=os.getenv("IDEMPOTENCY_ENABLED", "false").lower() == "true",
            idempotency_ttl_seconds=int(os.getenv("IDEMPOTENCY_TTL_SECONDS", "86400")),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            rate_limit_webhook=os.getenv("RATE_LIMIT_WEBHOOK", "6000/minute"),
            rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
