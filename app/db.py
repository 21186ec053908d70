# FILE: app/db.py
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Database path: ./data/chat_search.db relative to project root
# Override with ORB_DATABASE_URL env var (e.g. a postgresql:// URL)
DATABASE_URL = os.getenv("ORB_DATABASE_URL", "sqlite:///./data/chat_search.db")


def make_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine, adding the SQLite threading flag only where it applies."""
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)  # Required for SQLite
    return create_engine(
        url,
        connect_args=connect_args,
        echo=False,  # Set True to log SQL statements for debugging
        **kwargs,
    )


engine = make_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Call once at startup."""
    # Import models so Base.metadata knows about them
    from app.memory import models  # noqa: F401
    from app.embeddings import models as embedding_models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
