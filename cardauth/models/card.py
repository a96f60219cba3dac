from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    DECIMAL,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text
from cardauth.core.database import Base


class Wallet(Base):
    __tablename__ = "Wallets"

    WalletID = Column(Integer, primary_key=True, index=True)
    UserID = Column(String(64), nullable=False, index=True)
    # Cached fiat value of the linked wallet; NULL when unknown
    BalanceFiat = Column(DECIMAL(19, 4), nullable=True)
    UpdatedAt = Column(DateTime, server_default=func.now())


class Card(Base):
    __tablename__ = "Cards"

    CardID = Column(String(64), primary_key=True, index=True)
    UserID = Column(String(64), nullable=False, index=True)
    WalletID = Column(Integer, ForeignKey("Wallets.WalletID"), nullable=True)
    Status = Column(
        String(20),
        CheckConstraint("Status IN ('active', 'frozen', 'cancelled')"),
        nullable=False,
        default="active",
    )
    IsDisposable = Column(Boolean, nullable=False, default=False)
    LastUsedAt = Column(DateTime, nullable=True)
    CancelledAt = Column(DateTime, nullable=True)

    AllowedMCC = Column(JSON, nullable=False, default=list)
    BlockedMCC = Column(JSON, nullable=False, default=list)
    AllowedCountries = Column(JSON, nullable=False, default=list)
    BlockedCountries = Column(JSON, nullable=False, default=list)

    # NULL limit means unlimited
    SpendingLimit = Column(DECIMAL(19, 4), nullable=True)
    DailyLimit = Column(DECIMAL(19, 4), nullable=True)
    MonthlyLimit = Column(DECIMAL(19, 4), nullable=True)
    TotalSpent = Column(DECIMAL(19, 4), nullable=False, server_default=text("0"), default=0)
    MonthlySpent = Column(DECIMAL(19, 4), nullable=False, server_default=text("0"), default=0)
    CashbackRate = Column(DECIMAL(5, 4), nullable=True)

    CreatedAt = Column(DateTime, server_default=func.now())

    wallet = relationship(Wallet)
