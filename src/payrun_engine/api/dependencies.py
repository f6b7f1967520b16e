"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.database import init_db
from payrun_engine.populators.base import PayRunItemPopulator, SourceReconciler


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly; anything left uncommitted is rolled back when
    the session closes.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_populator(request: Request) -> PayRunItemPopulator:
    """Populator configured on the application."""
    return request.app.state.populator


def get_reconciler(request: Request) -> SourceReconciler:
    """Reconciler configured on the application."""
    return request.app.state.reconciler


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Populator = Annotated[PayRunItemPopulator, Depends(get_populator)]
Reconciler = Annotated[SourceReconciler, Depends(get_reconciler)]
