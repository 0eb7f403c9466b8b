"""Settlement engine command line interface.

Provides operational tools for:
- Scheduled bulk generation of the current pay period
- Pay period previews for a plan

Usage:
    python -m settlement_engine.cli bulk-generate --org-id X --plan-id Y
    python -m settlement_engine.cli preview-periods --org-id X --plan-id Y --count 6
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.config import configure_logging
from settlement_engine.database import dispose_db, get_session
from settlement_engine.errors import SettlementEngineError
from settlement_engine.services.assembly_service import SettlementAssemblyService
from settlement_engine.services.pay_plan_service import PayPlanConfig, PayPlanService

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def parse_datetime(s: str) -> datetime:
    """Parse an ISO timestamp that carries a UTC offset."""
    try:
        value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {s}") from e
    if value.tzinfo is None:
        raise argparse.ArgumentTypeError(f"Timestamp must include a UTC offset: {s}")
    return value


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    try:
        return UUID(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid UUID: {s}") from e


class SettlementCli:
    """Settlement engine command line interface."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self.session_scope = session_scope
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m settlement_engine.cli",
            description="Settlement engine operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # bulk-generate command
        bulk = subparsers.add_parser(
            "bulk-generate",
            help="Generate the current period for every payee on a plan",
        )
        bulk.add_argument(
            "--org-id",
            type=parse_uuid,
            required=True,
            help="Organization that owns the plan",
        )
        bulk.add_argument(
            "--plan-id",
            type=parse_uuid,
            required=True,
            help="Pay plan to generate settlements for",
        )
        bulk.add_argument(
            "--include-held",
            action="store_true",
            help="Release payables on held loads into the settlements",
        )
        bulk.add_argument(
            "--reference-date",
            type=parse_datetime,
            help="Instant that selects the period (ISO format, default: now)",
        )
        bulk.add_argument(
            "--created-by",
            type=str,
            default="cli",
            help="Actor recorded on generated settlements (default: cli)",
        )

        # preview-periods command
        preview = subparsers.add_parser(
            "preview-periods",
            help="Show the current and upcoming periods of a plan",
        )
        preview.add_argument(
            "--org-id",
            type=parse_uuid,
            required=True,
            help="Organization that owns the plan",
        )
        preview.add_argument(
            "--plan-id",
            type=parse_uuid,
            required=True,
            help="Pay plan to preview",
        )
        preview.add_argument(
            "--count",
            type=int,
            default=3,
            help="Number of periods to show (default: 3)",
        )
        preview.add_argument(
            "--reference-date",
            type=parse_datetime,
            help="Instant to preview from (ISO format, default: now)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., Any]] = {
            "bulk-generate": self._cmd_bulk_generate,
            "preview-periods": self._cmd_preview_periods,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._dispatch(handler, parsed))
        except SettlementEngineError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    async def _dispatch(self, handler: Callable[..., Any], args: argparse.Namespace) -> int:
        try:
            return await handler(args)
        finally:
            await dispose_db()

    async def _cmd_bulk_generate(self, args: argparse.Namespace) -> int:
        """Generate settlements for every active payee on a plan."""
        logger.info("Starting bulk generation for plan %s", args.plan_id)
        async with self.session_scope() as session:
            service = SettlementAssemblyService(session)
            result = await service.bulk_generate_by_plan(
                args.org_id,
                args.plan_id,
                reference=args.reference_date,
                include_held=args.include_held,
                created_by=args.created_by,
            )

        print(f"Bulk generation for plan: {args.plan_id}")
        print(f"  Period: {result.period_start.isoformat()} - {result.period_end.isoformat()}")
        for outcome in result.results:
            if outcome.success:
                print(
                    f"  OK    {outcome.payee_name:<30} {outcome.statement_number} "
                    f"{outcome.payables_assigned:>4} lines {outcome.gross_total:>12,.2f}"
                )
            else:
                print(f"  FAIL  {outcome.payee_name:<30} {outcome.error}")
        print(f"\n{result.success} generated, {result.failed} failed.")
        return 0

    async def _cmd_preview_periods(self, args: argparse.Namespace) -> int:
        """Print a plan's periods starting at the reference instant."""
        if args.count < 1:
            print("--count must be at least 1", file=sys.stderr)
            return 1

        async with self.session_scope() as session:
            service = PayPlanService(session)
            plan = await service.get_plan(args.plan_id, args.org_id)
            zone = await service.resolve_zone(plan, args.org_id)
            previews = service.preview(
                PayPlanConfig.from_plan(plan), zone, args.reference_date, args.count
            )

        print(f"Pay plan: {plan.name} ({plan.frequency}, {zone.key})")
        for preview in previews:
            period = preview.period
            print(
                f"  {preview.label:<32} pay date {period.pay_date.date().isoformat()}"
            )
        return 0


def main() -> int:
    """CLI entry point."""
    configure_logging()
    cli = SettlementCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
