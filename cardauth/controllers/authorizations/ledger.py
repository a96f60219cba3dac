from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from cardauth.controllers.authorizations.fraud import FraudAssessment
from cardauth.core import store
from cardauth.core.config import Settings
from cardauth.core.utils import Deadline, new_transaction_id, to_decimal
from cardauth.models.card import Card
from cardauth.models.transaction import CardTransaction
from cardauth.schemas.authorization_schema import AuthorizationRequest

CENTS = Decimal("0.0001")


def compute_cashback(
    amount: Decimal, rate: Optional[Decimal], default_rate: Decimal, blocked: bool
) -> Decimal:
    if blocked:
        return Decimal("0")
    effective = to_decimal(rate, default_rate)
    return (amount * effective).quantize(CENTS, rounding=ROUND_HALF_UP)


def record_approval(
    db: Session,
    card: Card,
    request: AuthorizationRequest,
    assessment: FraudAssessment,
    cashback: Decimal,
    now: datetime,
    settings: Settings,
    deadline: Deadline,
    reference: Optional[str] = None,
) -> str:
    """Apply the spend increment and append the ledger row in one transaction.

    Raises ``LimitExceededError`` when a concurrent authorization consumed the
    remaining limit between the checks and this write; nothing is committed
    in that case.
    """
    store.increment_spend(db, card.CardID, request.amount, now)

    row = CardTransaction(
        TransactionID=new_transaction_id(),
        CardID=card.CardID,
        UserID=card.UserID,
        Amount=request.amount,
        Currency=request.currency,
        MerchantName=request.merchantName,
        MerchantCity=request.merchantCity,
        MerchantCountry=request.merchantCountry,
        MCC=request.mcc,
        Latitude=request.latitude,
        Longitude=request.longitude,
        Status=store.APPROVED,
        CashbackAmount=cashback,
        CashbackToken=settings.cashback_token,
        IsAnomaly=assessment.is_anomaly,
        AnomalyReasons=list(assessment.reasons),
        RequestReference=reference,
        TransactionDate=now,
    )
    transaction_id = store.insert_transaction(db, row)

    # Past this point the handler waits for the commit instead of timing out
    deadline.begin_commit()
    db.commit()
    return transaction_id
