from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import StaticPool


# ── Declarative Base ──────────────────────────────────────────────────────────
# SQLAlchemy 2.0 style: all models inherit from this.
class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the engine and session factory for one application instance.

    Constructed explicitly by the app factory, opened in the lifespan startup
    hook and disposed on shutdown. Nothing in the package creates an engine
    at import time.
    """

    def __init__(self, url: str):
        self.url = url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def init(self) -> None:
        if self._engine is not None:
            return

        if self.url.startswith("sqlite"):
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            # In-memory SQLite lives inside a single connection; share it.
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            # pool_pre_ping=True: test every connection before using it.
            # Prevents "connection reset" errors after Postgres restarts or idle timeouts.
            engine_kwargs = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}

        self._engine = create_engine(self.url, **engine_kwargs)
        self._session_factory = sessionmaker(
            autocommit=False,   # commits are explicit: every secret mutation is one transaction
            autoflush=False,
            bind=self._engine,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database.init() has not been called")
        return self._engine

    def create_all(self) -> None:
        """Create every table registered on Base. Alembic is used outside dev/tests."""
        import authserver.models  # noqa: F401 (registers all ORM models)

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database.init() has not been called")
        return self._session_factory()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


# ── Dependency ────────────────────────────────────────────────────────────────
def get_db(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency that yields a DB session and guarantees cleanup.
    Use as: db: Session = Depends(get_db)
    The session is closed even if an exception is raised inside the endpoint.
    """
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
