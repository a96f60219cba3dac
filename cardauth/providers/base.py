"""Abstract base class for card-issuing providers."""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import Session

from cardauth.core import store
from cardauth.core.utils import utcnow
from cardauth.models.card import Card


class CardProvider(ABC):
    """Capabilities the authorization engine needs from a card issuer."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier as sent in the ``X-Card-Provider`` header."""
        ...

    @abstractmethod
    def verify_webhook(
        self, raw_body: bytes, signature: str, timestamp: Optional[str]
    ) -> bool:
        """
        Check that a webhook body was produced by this provider.

        Args:
            raw_body: Request body exactly as received
            signature: Value of the signature header
            timestamp: Value of the timestamp header, if sent

        Returns:
            True when the signature is authentic
        """
        ...

    @abstractmethod
    def get_card(self, db: Session, card_id: str, lock: bool = False) -> Optional[Card]:
        """
        Load the card's current controls and counters.

        Args:
            db: Session of the running authorization
            card_id: The card id from the webhook
            lock: Hold a row lock until the session commits

        Returns:
            Card if found, None otherwise
        """
        ...

    @abstractmethod
    def update_card(self, db: Session, card_id: str, **changes) -> Card:
        """Apply attribute changes to a card."""
        ...

    @abstractmethod
    def cancel_card(self, db: Session, card_id: str) -> bool:
        """
        Cancel a card permanently.

        Returns:
            True when this call moved the card to cancelled
        """
        ...


class StoreBackedProvider(CardProvider):
    """Provider whose card state is mirrored in the local Policy Store."""

    def get_card(self, db: Session, card_id: str, lock: bool = False) -> Optional[Card]:
        return store.get_card(db, card_id, lock=lock)

    def update_card(self, db: Session, card_id: str, **changes) -> Card:
        return store.update_card(db, card_id, **changes)

    def cancel_card(self, db: Session, card_id: str) -> bool:
        return store.cancel_card(db, card_id, utcnow())
