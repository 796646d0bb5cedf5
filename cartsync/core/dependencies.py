from sqlalchemy.ext.asyncio import AsyncSession
from typing import AsyncGenerator

from ..db.database import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Asynchronous dependency that provides a database session for FastAPI routes.

    Yields:
        AsyncSession: An instance of the asynchronous database session.

    Usage:
        Use as a dependency in FastAPI endpoints to access the guest cart store.
        The session is automatically closed after the request is processed.
    """

    async with AsyncSessionLocal() as db:
        yield db
