from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_data_dir() -> Path:
    return Path(os.environ.get("VENUE_SEATING_DATA_DIR", Path.cwd() / "data"))


def _default_db_url(data_dir: Path) -> str:
    # Keep data out of git by default.
    data_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{data_dir / 'venue_seating.db'}"


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    db_url: str
    currency: str = "usd"
    payment_gateway: str = "fake"
    stripe_secret_key: str = ""
    low_stock_recipients: str = "admins"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        db_url = os.environ.get("VENUE_SEATING_DB_URL") or _default_db_url(_default_data_dir())
        return cls(
            db_url=db_url,
            currency=os.environ.get("VENUE_SEATING_CURRENCY", "usd").lower(),
            payment_gateway=os.environ.get("VENUE_SEATING_PAYMENT_GATEWAY", "fake").lower(),
            stripe_secret_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            low_stock_recipients=os.environ.get("VENUE_SEATING_LOW_STOCK_RECIPIENTS", "admins").lower(),
            cors_origins=_split(os.environ.get("VENUE_SEATING_CORS_ORIGINS", "*")),
        )
