"""FastAPI dependencies shared by the routers."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.database import init_db
from settlement_engine.errors import ValidationError

ORGANIZATION_HEADER = "X-Organization-ID"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request.

    Routes commit explicitly after the service call succeeds; anything
    still pending when the request ends is rolled back on close.
    """
    _, factory = init_db()
    async with factory() as session:
        yield session


async def get_organization_id(
    organization_header: Annotated[str | None, Header(alias=ORGANIZATION_HEADER)] = None,
) -> UUID:
    """Every settlement, plan and payable lookup is scoped by this header."""
    if not organization_header:
        raise ValidationError(f"{ORGANIZATION_HEADER} header is required", field=ORGANIZATION_HEADER)
    try:
        return UUID(organization_header)
    except ValueError as e:
        raise ValidationError(
            f"Invalid {ORGANIZATION_HEADER} format: {organization_header!r}",
            field=ORGANIZATION_HEADER,
        ) from e


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
OrganizationId = Annotated[UUID, Depends(get_organization_id)]
