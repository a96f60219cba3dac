from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    DECIMAL,
    Float,
    ForeignKey,
    Index,
    String,
)
from cardauth.core.database import Base


class CardTransaction(Base):
    __tablename__ = "CardTransactions"
    __table_args__ = (
        Index("ix_cardtransactions_card_date", "CardID", "TransactionDate"),
    )

    TransactionID = Column(String(36), primary_key=True, index=True)
    CardID = Column(String(64), ForeignKey("Cards.CardID", ondelete="NO ACTION"), nullable=False)
    UserID = Column(String(64), nullable=False)
    Amount = Column(DECIMAL(19, 4), nullable=False)
    Currency = Column(String(3), nullable=False)
    MerchantName = Column(String(255), nullable=False)
    MerchantCity = Column(String(100), nullable=True)
    MerchantCountry = Column(String(2), nullable=False)
    MCC = Column(String(4), nullable=False)
    Latitude = Column(Float, nullable=True)
    Longitude = Column(Float, nullable=True)
    Status = Column(String(20), nullable=False, default="approved")
    CashbackAmount = Column(DECIMAL(19, 4), nullable=False, default=0)
    CashbackToken = Column(String(20), nullable=True)
    IsAnomaly = Column(Boolean, nullable=False, default=False)
    AnomalyReasons = Column(JSON, nullable=False, default=list)
    RequestReference = Column(String(100), nullable=True)
    TransactionDate = Column(DateTime, nullable=False)
