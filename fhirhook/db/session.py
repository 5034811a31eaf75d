import os
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base


DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL is None:
    raise ValueError("DATABASE_URL environment variable not set")

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


def to_async_url(url: str) -> str:
    """Point plain postgres URLs at the asyncpg driver; leave other drivers alone."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


ASYNC_DATABASE_URL = to_async_url(DATABASE_URL)

async_engine = create_async_engine(ASYNC_DATABASE_URL, echo=SQL_ECHO)
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    expire_on_commit=False,
)

Base = declarative_base()
