from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import JSON, BigInteger, Integer, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from nubia.core.config import DatabaseConfig

Base = declarative_base()

# SQLite only auto-increments INTEGER PRIMARY KEY columns, so BIGINT ids get
# an INTEGER variant there. Postgres keeps BIGSERIAL.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

engine: Optional[Engine] = None


def _normalize_url(url: str) -> str:
    # Heroku-style URLs are rejected by SQLAlchemy 2
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def init_engine(db_config: DatabaseConfig) -> Engine:
    """Create the process-wide engine and bind the session factory to it."""
    global engine

    url = _normalize_url(db_config.url)
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=db_config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            echo=db_config.echo,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_recycle=db_config.pool_recycle,
            pool_pre_ping=True,
        )
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    if engine is None:
        raise RuntimeError("Database engine is not initialised; call init_engine() first.")
    return engine


@contextmanager
def get_connection() -> Iterator[Connection]:
    """Raw connection for health checks and aggregate queries."""
    with get_engine().connect() as conn:
        yield conn


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Unit of work for one request: commits if the block finishes, rolls back
    on any exception so a failed checkout never leaves half an order behind.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
