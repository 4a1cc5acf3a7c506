from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from ..errors import TransactionFailure

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


class Database:
    """Owns the engine and session factory for one process.

    Built at startup, passed to routes (via app.state) and sweepers, disposed
    on shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs):
        self.url = url
        self.engine = create_async_engine(url, future=True, echo=echo, **engine_kwargs)
        if url.startswith('sqlite'):
            # cascading deletes from users depend on enforced foreign keys
            event.listen(self.engine.sync_engine, 'connect', _enable_sqlite_foreign_keys)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def session(self) -> AsyncSession:
        return self.session_factory()

    @asynccontextmanager
    async def transaction(self):
        """One session, one transaction: commit on success, roll back on any error.

        Database errors surface as TransactionFailure; domain errors raised
        inside the block propagate unchanged after the rollback.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                raise TransactionFailure(f'Transaction rolled back: {e.__class__.__name__}') from e

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()


# Import models to register tables
from .users import User, AccountStatus  # noqa: F401,E402
from .session_logs import SessionLog  # noqa: F401,E402
from .tokens import Token, TokenType  # noqa: F401,E402
from .follows import FollowRelationship  # noqa: F401,E402
