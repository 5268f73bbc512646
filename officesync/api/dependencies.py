"""FastAPI dependency providers."""
from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from ``app.state.session_factory``; commit on success, roll back on error."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def invalidate_config(request: Request) -> None:
    """Drop the cached configuration snapshot after an admin write."""
    config_service = getattr(request.app.state, "config_service", None)
    if config_service is not None:
        config_service.invalidate()
