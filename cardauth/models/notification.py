from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func
from cardauth.core.database import Base


class Notification(Base):
    __tablename__ = "Notifications"

    NotificationID = Column(Integer, primary_key=True, index=True)
    UserID = Column(String(64), nullable=False, index=True)
    Type = Column(String(30), nullable=False)
    Title = Column(String(100), nullable=False)
    Body = Column(String(255), nullable=False)
    Channels = Column(JSON, nullable=False, default=list)
    Priority = Column(String(10), nullable=False, default="normal")
    Status = Column(String(20), nullable=False, default="pending")
    Metadata = Column(JSON, nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())
