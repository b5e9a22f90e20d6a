from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy import event
from sqlalchemy.pool import StaticPool

from sanctuary.core.config import settings
from sanctuary.core.logging_config import get_logger

logger = get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _build_engine(url: str):
    if url.startswith("sqlite"):
        # In-memory databases must share one connection across worker threads
        kwargs = {"poolclass": StaticPool} if ":memory:" in url else {}
        return create_engine(url, echo=False, connect_args={"check_same_thread": False}, **kwargs)

    return create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,
        pool_timeout=30,
        connect_args={"connect_timeout": 10},
    )


engine = _build_engine(DATABASE_URL)


if not IS_SQLITE:

    @event.listens_for(engine, "connect")
    def set_statement_timeout(dbapi_connection, connection_record):
        """Bound every query so a slow report cannot pin a connection."""
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("SET statement_timeout = '30s'")
        except Exception as e:
            logger.warning("Could not set statement timeout", error=str(e))
        finally:
            cursor.close()


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    # Register every table on the metadata before create_all
    import sanctuary.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
