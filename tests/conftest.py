"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime
from decimal import Decimal

# Module-level engines are created at import time
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "cardauth_test.db"),
)
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from cardauth.core.config import Settings, get_settings
from cardauth.core.database import build_engine, get_session_factory, init_db
from cardauth.models.card import Card, Wallet
from cardauth.models.transaction import CardTransaction
from cardauth.providers.signed import SandboxCardProvider
from cardauth.schemas.authorization_schema import AuthorizationRequest


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'cardauth.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(authorization_timeout_seconds=30.0)


@pytest.fixture
def provider() -> SandboxCardProvider:
    return SandboxCardProvider()


@pytest.fixture
def now() -> datetime:
    """Fixed clock, midday UTC."""
    return datetime(2026, 10, 17, 12, 0, 0)


@pytest.fixture
def make_card(db):
    """Create a card with permissive defaults; keyword arguments override columns."""
    counter = {"n": 0}

    def _make(balance=None, **overrides) -> Card:
        counter["n"] += 1
        wallet = Wallet(UserID=overrides.get("UserID", "user-001"), BalanceFiat=balance)
        db.add(wallet)
        db.flush()
        values = {
            "CardID": f"card-{counter['n']:03d}",
            "UserID": "user-001",
            "WalletID": wallet.WalletID,
            "Status": "active",
            "IsDisposable": False,
            "AllowedMCC": [],
            "BlockedMCC": [],
            "AllowedCountries": [],
            "BlockedCountries": [],
            "TotalSpent": Decimal("0"),
            "MonthlySpent": Decimal("0"),
        }
        values.update(overrides)
        card = Card(**values)
        db.add(card)
        db.commit()
        return card

    return _make


@pytest.fixture
def add_transaction(db):
    """Append an approved ledger row."""
    counter = {"n": 0}

    def _add(card_id: str, when: datetime, amount="10", mcc="5411", **overrides) -> CardTransaction:
        counter["n"] += 1
        values = {
            "TransactionID": f"txn-{counter['n']:04d}",
            "CardID": card_id,
            "UserID": "user-001",
            "Amount": Decimal(str(amount)),
            "Currency": "USD",
            "MerchantName": "Corner Store",
            "MerchantCountry": "US",
            "MCC": mcc,
            "Status": "approved",
            "CashbackAmount": Decimal("0"),
            "IsAnomaly": False,
            "AnomalyReasons": [],
            "TransactionDate": when,
        }
        values.update(overrides)
        row = CardTransaction(**values)
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture
def make_request():
    def _make(card_id: str, **overrides) -> AuthorizationRequest:
        values = {
            "cardId": card_id,
            "amount": "12.50",
            "currency": "USD",
            "merchantName": "Coffee Shop",
            "merchantCity": "Austin",
            "merchantCountry": "US",
            "mcc": "5814",
        }
        values.update(overrides)
        return AuthorizationRequest.model_validate(values)

    return _make


@pytest.fixture
def client(session_factory, settings):
    from cardauth.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
