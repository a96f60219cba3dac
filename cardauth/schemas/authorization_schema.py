from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator


class DeclineReason(str, Enum):
    # Wire values are stable; never rename or reorder
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    CARD_INACTIVE = "CARD_INACTIVE"
    DISPOSABLE_CARD_USED = "DISPOSABLE_CARD_USED"
    MERCHANT_CATEGORY_BLOCKED = "MERCHANT_CATEGORY_BLOCKED"
    MERCHANT_CATEGORY_NOT_ALLOWED = "MERCHANT_CATEGORY_NOT_ALLOWED"
    COUNTRY_BLOCKED = "COUNTRY_BLOCKED"
    COUNTRY_NOT_ALLOWED = "COUNTRY_NOT_ALLOWED"
    SPENDING_LIMIT_EXCEEDED = "SPENDING_LIMIT_EXCEEDED"
    MONTHLY_LIMIT_EXCEEDED = "MONTHLY_LIMIT_EXCEEDED"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    VELOCITY_EXCEEDED = "VELOCITY_EXCEEDED"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class AuthorizationRequest(BaseModel):
    cardId: constr(min_length=1, max_length=64)  # type: ignore
    amount: Decimal = Field(gt=0, max_digits=19, decimal_places=4)
    currency: constr(min_length=3, max_length=3)  # type: ignore
    merchantName: constr(min_length=1, max_length=255)  # type: ignore
    merchantCity: Optional[constr(max_length=100)] = None  # type: ignore
    merchantCountry: constr(min_length=2, max_length=2)  # type: ignore
    mcc: constr(pattern=r"^\d{4}$")  # type: ignore
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("currency", "merchantCountry")
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.upper()

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class AuthorizationResponse(BaseModel):
    approved: bool
    transactionId: Optional[str] = None
    cashbackAmount: Optional[float] = None
    declineReason: Optional[DeclineReason] = None
    message: str
    model_config = ConfigDict(use_enum_values=True)

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)
