import logging
from contextlib import contextmanager

from dotenv import load_dotenv
from sqlalchemy import JSON, BigInteger, Integer, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()

logger = logging.getLogger(__name__)

# BIGINT autoincrement on Postgres, rowid alias on SQLite.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONDoc = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


engine = None
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)


def normalize_database_url(url: str) -> str:
    """Heroku-style postgres:// URLs are not accepted by SQLAlchemy 2."""
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def init_engine(database_config):
    """
    Create the module-level engine from a DatabaseConfig and bind the
    session factory to it.

    In-memory SQLite (used by the test-suite) needs a single shared
    connection, otherwise every pooled connection sees an empty database.
    """
    global engine

    url = normalize_database_url(database_config.url)
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=database_config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            echo=database_config.echo,
            pool_size=database_config.pool_size,
            max_overflow=database_config.max_overflow,
            pool_timeout=database_config.pool_timeout,
            pool_recycle=database_config.pool_recycle,
            pool_pre_ping=True,
        )

    SessionLocal.configure(bind=engine)
    logger.info(f"Database engine initialised for dialect {engine.dialect.name}")
    return engine


def create_all() -> None:
    # Importing the models registers every table on Base.metadata.
    import storefront.models  # noqa: F401

    Base.metadata.create_all(engine)


def get_connection():
    """Raw connection for health checks and ad-hoc SQL."""
    return engine.connect()


@contextmanager
def session_scope():
    """Transactional scope for scripts (seed, maintenance) outside a request."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
