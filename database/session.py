import logging
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings
from database.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: str, **kwargs) -> Engine:
    """Create an engine; SQLite gets real SAVEPOINT and foreign key support."""
    if url.startswith("sqlite:///") and ":memory:" not in url:
        # Make sure the parent directory of the database file exists
        Path(url.split("sqlite:///")[-1]).expanduser().resolve().parent.mkdir(
            parents=True, exist_ok=True
        )

    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # pysqlite's own transaction handling breaks SAVEPOINT; take over BEGIN
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine):
    """Return a ``get_session``-style context manager bound to ``engine``.

    Each ``with`` block is one database transaction: committed when the block
    exits normally, rolled back when it raises.
    """
    session_local = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def session_scope():
        session: Session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


engine = create_db_engine(settings.DATABASE_URL)
get_session = make_session_factory(engine)


def init_db(bind: Engine = engine) -> None:
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database schema ready ({bind.url.drivername})")
