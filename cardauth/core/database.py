import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Load environment variables
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set in the .env file!")


def build_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite has no server-side pool; sessions hop between worker threads
        return create_engine(url, connect_args={"check_same_thread": False})

    # Database connection with pooling
    return create_engine(
        url,
        pool_size=5,  # Max connections in pool
        max_overflow=10,  # Extra connections if needed
        pool_timeout=30,  # Wait time for a connection
        pool_recycle=1800,  # Recycle connections every 30 minutes
        pool_pre_ping=True,
    )


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for work that opens its own sessions off the request thread
def get_session_factory():
    return SessionLocal


def init_db(bind=None):
    # Import models so they register on Base.metadata
    from cardauth.models import card, notification, transaction  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
