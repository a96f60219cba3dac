"""Policy Store and Transaction Ledger queries.

Every function takes the caller's ``Session`` and leaves transaction control
(commit/rollback) to the caller. Timestamps are naive UTC.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Set

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from cardauth.core.exceptions import CardNotFoundError, LimitExceededError
from cardauth.core.utils import to_decimal
from cardauth.models.card import Card
from cardauth.models.transaction import CardTransaction
from cardauth.schemas.authorization_schema import DeclineReason

APPROVED = "approved"


def utc_day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def get_card(db: Session, card_id: str, lock: bool = False) -> Optional[Card]:
    query = db.query(Card).filter(Card.CardID == card_id)
    if lock:
        # Row lock on engines with FOR UPDATE; a no-op on SQLite
        query = query.with_for_update(of=Card)
    return query.first()


def sum_approved_amount(db: Session, card_id: str, since: datetime) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(CardTransaction.Amount), 0))
        .filter(
            CardTransaction.CardID == card_id,
            CardTransaction.Status == APPROVED,
            CardTransaction.TransactionDate >= since,
        )
        .scalar()
    )
    return to_decimal(total, Decimal("0"))


def count_approved(db: Session, card_id: str, since: datetime) -> int:
    return (
        db.query(func.count(CardTransaction.TransactionID))
        .filter(
            CardTransaction.CardID == card_id,
            CardTransaction.Status == APPROVED,
            CardTransaction.TransactionDate >= since,
        )
        .scalar()
        or 0
    )


def distinct_mcc_history(db: Session, card_id: str) -> Set[str]:
    rows = (
        db.query(CardTransaction.MCC)
        .filter(
            CardTransaction.CardID == card_id,
            CardTransaction.Status == APPROVED,
        )
        .distinct()
        .all()
    )
    return {row[0] for row in rows}


def last_geo_tagged_transaction(db: Session, card_id: str) -> Optional[CardTransaction]:
    return (
        db.query(CardTransaction)
        .filter(
            CardTransaction.CardID == card_id,
            CardTransaction.Status == APPROVED,
            CardTransaction.Latitude.isnot(None),
            CardTransaction.Longitude.isnot(None),
        )
        .order_by(CardTransaction.TransactionDate.desc())
        .first()
    )


def claim_disposable(db: Session, card_id: str, now: datetime) -> bool:
    """Mark a disposable card as used. False when another attempt got there first."""
    result = db.execute(
        update(Card)
        .where(Card.CardID == card_id, Card.LastUsedAt.is_(None))
        .values(LastUsedAt=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cancel_card(db: Session, card_id: str, now: datetime) -> bool:
    """Move an active card to cancelled. True only for the call that did it."""
    result = db.execute(
        update(Card)
        .where(Card.CardID == card_id, Card.Status == "active")
        .values(Status="cancelled", CancelledAt=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def update_card(db: Session, card_id: str, **changes) -> Card:
    card = get_card(db, card_id)
    if not card:
        raise CardNotFoundError(f"Card {card_id} not found")
    for key, value in changes.items():
        setattr(card, key, value)
    db.flush()
    return card


def increment_spend(db: Session, card_id: str, amount: Decimal, now: datetime) -> None:
    """Add ``amount`` to the spend counters only if both limits still hold.

    The limit comparison and the increment are one UPDATE statement, so two
    racing authorizations cannot both push a counter past its limit.
    """
    result = db.execute(
        update(Card)
        .where(Card.CardID == card_id)
        .where(
            or_(
                Card.SpendingLimit.is_(None),
                Card.TotalSpent + amount <= Card.SpendingLimit,
            )
        )
        .where(
            or_(
                Card.MonthlyLimit.is_(None),
                Card.MonthlySpent + amount <= Card.MonthlyLimit,
            )
        )
        .values(
            TotalSpent=Card.TotalSpent + amount,
            MonthlySpent=Card.MonthlySpent + amount,
            LastUsedAt=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    card = db.query(Card).filter(Card.CardID == card_id).populate_existing().first()
    if not card:
        raise CardNotFoundError(f"Card {card_id} not found")
    limit = to_decimal(card.SpendingLimit)
    if limit is not None and to_decimal(card.TotalSpent) + amount > limit:
        raise LimitExceededError(
            DeclineReason.SPENDING_LIMIT_EXCEEDED, "Total spending limit exceeded"
        )
    raise LimitExceededError(
        DeclineReason.MONTHLY_LIMIT_EXCEEDED, "Monthly spending limit exceeded"
    )


def insert_transaction(db: Session, row: CardTransaction) -> str:
    db.add(row)
    db.flush()
    return row.TransactionID
