from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from order_api.core.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    """Create an engine; SQLite connections are shared across threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None):
    # Table classes must be registered on Base before create_all
    import order_api.models.database  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
