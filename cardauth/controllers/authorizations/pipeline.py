"""Decision pipeline for real-time card authorizations.

Checks run in a fixed order and the first failure is the decline reason that
gets reported:

    existence -> status -> disposable -> MCC block -> MCC allow ->
    country block -> country allow -> total limit -> monthly limit ->
    daily limit -> balance -> velocity

Requests that pass every check are scored for anomalies and written to the
ledger. The pipeline never raises; unexpected errors come back as ``Fault``.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple, Union

from sqlalchemy.orm import Session

from cardauth.controllers.authorizations.fraud import FraudScorer, check_velocity
from cardauth.controllers.authorizations.ledger import compute_cashback, record_approval
from cardauth.core import store
from cardauth.core.config import Settings
from cardauth.core.exceptions import LimitExceededError
from cardauth.core.logging import get_logger
from cardauth.core.utils import Deadline, to_decimal, utcnow
from cardauth.providers.base import CardProvider
from cardauth.schemas.authorization_schema import AuthorizationRequest, DeclineReason

logger = get_logger(__name__)


@dataclass(frozen=True)
class Approved:
    transaction_id: Optional[str]
    cashback_amount: Decimal
    user_id: str
    anomaly_reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_anomaly(self) -> bool:
        return bool(self.anomaly_reasons)


@dataclass(frozen=True)
class Declined:
    reason: DeclineReason
    message: str


@dataclass(frozen=True)
class Fault:
    cause: BaseException
    stage: str


Outcome = Union[Approved, Declined, Fault]


class DecisionPipeline:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        provider: CardProvider,
        deadline: Optional[Deadline] = None,
        now: Optional[datetime] = None,
        reference: Optional[str] = None,
    ):
        self.db = db
        self.settings = settings
        self.provider = provider
        self.deadline = deadline or Deadline(settings.authorization_timeout_seconds)
        self.now = now
        self.reference = reference
        self.scorer = FraudScorer(settings)
        self.stage = "start"

    def evaluate(self, request: AuthorizationRequest, dry_run: bool = False) -> Outcome:
        """Decide one authorization.

        With ``dry_run`` every check runs but nothing is claimed, cancelled or
        written, so repeating the call against an unchanged card gives the
        same outcome.
        """
        self.stage = "start"
        try:
            return self._run(request, dry_run)
        except Exception as e:
            self.db.rollback()
            logger.exception(
                "Authorization fault for card %s amount %s at stage %s",
                request.cardId,
                request.amount,
                self.stage,
            )
            return Fault(e, self.stage)
        finally:
            if dry_run:
                self.db.rollback()

    def _enter(self, stage: str) -> None:
        self.stage = stage
        self.deadline.check(stage)

    def _run(self, request: AuthorizationRequest, dry_run: bool) -> Outcome:
        now = self.now or utcnow()
        card_id = request.cardId
        amount = request.amount

        self._enter("existence")
        card = self.provider.get_card(self.db, card_id, lock=not dry_run)
        if card is None:
            return Declined(DeclineReason.CARD_NOT_FOUND, "Card does not exist")
        user_id = card.UserID

        self._enter("status")
        if card.Status != "active":
            return Declined(DeclineReason.CARD_INACTIVE, f"Card is {card.Status}")

        self._enter("disposable")
        if card.IsDisposable:
            if card.LastUsedAt is not None:
                return self._burn(card_id, dry_run)
            if not dry_run:
                # The first attempt uses up the card whatever the later checks say
                if not store.claim_disposable(self.db, card_id, now):
                    self.db.rollback()
                    return self._burn(card_id, dry_run)
                self.db.commit()
                card = self.provider.get_card(self.db, card_id, lock=True)

        self._enter("merchant_category")
        if request.mcc in (card.BlockedMCC or []):
            return Declined(
                DeclineReason.MERCHANT_CATEGORY_BLOCKED,
                f"Merchant category {request.mcc} is blocked",
            )
        allowed_mcc = card.AllowedMCC or []
        if allowed_mcc and request.mcc not in allowed_mcc:
            return Declined(
                DeclineReason.MERCHANT_CATEGORY_NOT_ALLOWED,
                f"Merchant category {request.mcc} not in whitelist",
            )

        self._enter("country")
        country = request.merchantCountry
        if country in (card.BlockedCountries or []):
            return Declined(
                DeclineReason.COUNTRY_BLOCKED, f"Transactions from {country} are blocked"
            )
        allowed_countries = card.AllowedCountries or []
        if allowed_countries and country not in allowed_countries:
            return Declined(
                DeclineReason.COUNTRY_NOT_ALLOWED, f"Transactions from {country} not allowed"
            )

        self._enter("spending_limit")
        spending_limit = to_decimal(card.SpendingLimit)
        if spending_limit is not None and to_decimal(card.TotalSpent, Decimal("0")) + amount > spending_limit:
            return Declined(
                DeclineReason.SPENDING_LIMIT_EXCEEDED, "Total spending limit exceeded"
            )

        self._enter("monthly_limit")
        monthly_limit = to_decimal(card.MonthlyLimit)
        if monthly_limit is not None and to_decimal(card.MonthlySpent, Decimal("0")) + amount > monthly_limit:
            return Declined(
                DeclineReason.MONTHLY_LIMIT_EXCEEDED, "Monthly spending limit exceeded"
            )

        self._enter("daily_limit")
        daily_limit = to_decimal(card.DailyLimit)
        if daily_limit is not None:
            spent_today = store.sum_approved_amount(
                self.db, card_id, store.utc_day_start(now)
            )
            if spent_today + amount > daily_limit:
                return Declined(
                    DeclineReason.DAILY_LIMIT_EXCEEDED, "Daily spending limit exceeded"
                )

        self._enter("balance")
        balance = to_decimal(card.wallet.BalanceFiat) if card.wallet else None
        if balance is not None and balance < amount:
            return Declined(DeclineReason.INSUFFICIENT_FUNDS, "Insufficient wallet balance")

        self._enter("velocity")
        if check_velocity(self.db, card_id, now, self.settings):
            logger.warning(
                "Velocity limit hit for card %s: %s approvals in %s minutes",
                card_id,
                self.settings.velocity_max_transactions,
                self.settings.velocity_window_minutes,
            )
            return Declined(
                DeclineReason.VELOCITY_EXCEEDED, "Too many transactions in a short period"
            )

        self._enter("fraud_scoring")
        assessment = self.scorer.score(self.db, card, request, now)
        cashback = compute_cashback(
            amount,
            to_decimal(card.CashbackRate),
            self.settings.default_cashback_rate,
            assessment.cashback_blocked,
        )

        if dry_run:
            return Approved(None, cashback, user_id, tuple(assessment.reasons))

        self._enter("ledger")
        try:
            transaction_id = record_approval(
                self.db,
                card,
                request,
                assessment,
                cashback,
                now,
                self.settings,
                self.deadline,
                reference=self.reference,
            )
        except LimitExceededError as e:
            self.db.rollback()
            logger.info("Late limit decline for card %s: %s", card_id, e.reason)
            return Declined(DeclineReason(e.reason), str(e))

        return Approved(transaction_id, cashback, user_id, tuple(assessment.reasons))

    def _burn(self, card_id: str, dry_run: bool) -> Declined:
        if not dry_run:
            if self.provider.cancel_card(self.db, card_id):
                logger.info("Disposable card %s cancelled after reuse attempt", card_id)
            self.db.commit()
        return Declined(DeclineReason.DISPOSABLE_CARD_USED, "Disposable card already used")

