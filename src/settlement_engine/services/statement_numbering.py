"""Statement number allocation (``<PREFIX>-<year>-<sequence>``)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.config import get_settings
from settlement_engine.database import acquire_statement_number_lock
from settlement_engine.errors import StatementNumberConflictError
from settlement_engine.models import Settlement

logger = logging.getLogger(__name__)


def format_statement_number(prefix: str, year: int, sequence: int, width: int = 3) -> str:
    return f"{prefix}-{year}-{str(sequence).zfill(width)}"


def parse_sequence(statement_number: str, prefix: str, year: int) -> int | None:
    """Sequence part of a number issued for ``year``, or None if it is not one."""
    head = f"{prefix}-{year}-"
    if not statement_number.startswith(head):
        return None
    tail = statement_number[len(head):]
    return int(tail) if tail.isdigit() else None


class StatementNumberAllocator:
    """Allocates per-organization, per-year statement numbers.

    The current maximum is re-read inside the caller's transaction. Inserts
    run in a SAVEPOINT and are retried with a fresh number when the unique
    constraint on ``(organization_id, statement_number)`` rejects them.
    """

    def __init__(
        self,
        session: AsyncSession,
        prefix: str | None = None,
        width: int | None = None,
        max_attempts: int | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.prefix = prefix or settings.statement_prefix
        self.width = width or settings.statement_sequence_width
        self.max_attempts = max_attempts or settings.statement_number_max_attempts

    async def current_max(self, organization_id: UUID, year: int) -> int:
        result = await self.session.execute(
            select(Settlement.statement_number).where(
                Settlement.organization_id == organization_id,
                Settlement.statement_number.like(f"{self.prefix}-{year}-%"),
            )
        )
        sequences = (parse_sequence(number, self.prefix, year) for number in result.scalars())
        return max((seq for seq in sequences if seq is not None), default=0)

    async def next_number(self, organization_id: UUID, year: int) -> str:
        await acquire_statement_number_lock(self.session, str(organization_id), year)
        sequence = await self.current_max(organization_id, year) + 1
        return format_statement_number(self.prefix, year, sequence, self.width)

    async def insert_numbered(
        self,
        organization_id: UUID,
        year: int,
        build: Callable[[str], Settlement],
        on_conflict: Callable[[], Awaitable[None]] | None = None,
    ) -> Settlement:
        """Insert the settlement produced by ``build(number)``.

        ``on_conflict`` runs after each rejected insert and may raise to stop
        retrying (for example when the conflict was not on the number).
        """
        for attempt in range(1, self.max_attempts + 1):
            number = await self.next_number(organization_id, year)
            settlement = build(number)
            try:
                async with self.session.begin_nested():
                    self.session.add(settlement)
                    await self.session.flush()
            except IntegrityError:
                logger.warning(
                    "Statement number %s collided for organization %s (attempt %d/%d)",
                    number,
                    organization_id,
                    attempt,
                    self.max_attempts,
                )
                if on_conflict is not None:
                    await on_conflict()
                continue
            return settlement

        raise StatementNumberConflictError(organization_id, self.max_attempts)
