from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from powgate.config import settings

engine = create_engine(
    settings.database_url,
    connect_args=(
        {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    ),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def init_db(bind=None) -> None:
    """Create missing tables."""
    # Registers the models on Base.metadata
    from powgate.models import used_challenge  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Dependency for FastAPI endpoints to get a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
