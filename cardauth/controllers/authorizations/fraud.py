import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List

from sqlalchemy.orm import Session

from cardauth.core import store
from cardauth.core.config import Settings
from cardauth.core.logging import get_logger
from cardauth.models.card import Card
from cardauth.schemas.authorization_schema import AuthorizationRequest

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

GEO_MISMATCH = "geo_mismatch"
NEW_MCC = "new_mcc"
HIGH_RISK_MCC = "high_risk_mcc"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def check_velocity(db: Session, card_id: str, now: datetime, settings: Settings) -> bool:
    """True when the trailing window already holds the maximum number of approvals."""
    since = now - timedelta(minutes=settings.velocity_window_minutes)
    recent = store.count_approved(db, card_id, since)
    return recent >= settings.velocity_max_transactions


@dataclass
class FraudAssessment:
    reasons: List[str] = field(default_factory=list)
    cashback_blocked: bool = False

    @property
    def is_anomaly(self) -> bool:
        return bool(self.reasons)


class FraudScorer:
    """Advisory anomaly signals for an authorization that is going to be approved."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def score(
        self,
        db: Session,
        card: Card,
        request: AuthorizationRequest,
        now: datetime,
    ) -> FraudAssessment:
        assessment = FraudAssessment()

        if self._geo_mismatch(db, card.CardID, request, now):
            assessment.reasons.append(GEO_MISMATCH)

        if request.mcc not in store.distinct_mcc_history(db, card.CardID):
            assessment.reasons.append(NEW_MCC)

        if request.mcc in self.settings.high_risk_mcc:
            assessment.reasons.append(HIGH_RISK_MCC)
            assessment.cashback_blocked = True

        if assessment.is_anomaly:
            logger.info(
                "Anomaly flagged for card %s: %s",
                card.CardID,
                ",".join(assessment.reasons),
            )
        return assessment

    def _geo_mismatch(
        self,
        db: Session,
        card_id: str,
        request: AuthorizationRequest,
        now: datetime,
    ) -> bool:
        if not request.has_coordinates:
            return False

        last = store.last_geo_tagged_transaction(db, card_id)
        if last is None:
            return False
        if last.TransactionDate < now - timedelta(minutes=self.settings.geo_window_minutes):
            return False

        distance = haversine_km(
            last.Latitude, last.Longitude, request.latitude, request.longitude
        )
        return distance > self.settings.geo_max_distance_km
