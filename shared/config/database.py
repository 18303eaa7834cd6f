import os
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from . import settings  # noqa: F401  (loads .env before the URL is built)

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "storefront")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

Base = declarative_base()


def enable_sqlite_transactions(engine):
    """
    Make SQLite behave like a locking store for our use cases.

    pysqlite defers BEGIN until the first write, so two checkouts could both read
    stock before either writes. Emitting BEGIN IMMEDIATE takes the write lock up
    front and concurrent transactions queue behind it.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str = DATABASE_URL, **kwargs):
    engine = create_async_engine(url, echo=os.getenv("DB_ECHO", "false").lower() == "true", **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_transactions(engine)
    return engine


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Unit of work for one use case.

    Opens the session's transaction, or a savepoint when a caller already holds
    one, so orchestrations can compose without ambient state. Commits on exit and
    rolls everything back on any exception.
    """
    if db.in_transaction():
        async with db.begin_nested():
            yield db
    else:
        async with db.begin():
            yield db
