"""Billing Command Line Interface.

Provides operational tools for:
- Schema creation
- Billing period creation and charge generation
- Payroll export and export history

Usage:
    python -m billing_engine.cli init-db
    python -m billing_engine.cli create-period --start 2024-01-01 --end 2024-01-31
    python -m billing_engine.cli generate --period-id X
    python -m billing_engine.cli process --period-id X
    python -m billing_engine.cli export --period-id X --output payroll.csv --commit
    python -m billing_engine.cli history --period-id X
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from datetime import date
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_engine.config import Settings, configure_logging
from billing_engine.database import create_schema, dispose_db, init_db
from billing_engine.errors import BillingError, PartialGenerationError
from billing_engine.services.export_service import PayrollExportService
from billing_engine.services.generation import ChargeGenerationService
from billing_engine.services.generation_types import GenerationReport
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.state_machine import InvalidTransitionError

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class BillingCli:
    """Billing Command Line Interface.

    Each command runs in one session that is committed when the command
    succeeds. Generation that partially failed is still committed; the
    command then exits with status 2.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m billing_engine.cli",
            description="Billing period operational tools",
        )
        parser.add_argument("--log-level", help="Override LOG_LEVEL")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        create = subparsers.add_parser("create-period", help="Create a draft billing period")
        create.add_argument("--start", type=parse_date, required=True, help="Start date")
        create.add_argument("--end", type=parse_date, required=True, help="End date")

        generate = subparsers.add_parser(
            "generate",
            help="Generate housing and transport charges",
        )
        generate.add_argument("--period-id", type=parse_uuid, required=True)

        process = subparsers.add_parser(
            "process",
            help="Generate charges and complete the billing period",
        )
        process.add_argument("--period-id", type=parse_uuid, required=True)

        export = subparsers.add_parser("export", help="Write the payroll export CSV")
        export.add_argument("--period-id", type=parse_uuid, required=True)
        export.add_argument("--output", "-o", help="Output file path (default: stdout)")
        export.add_argument(
            "--commit",
            action="store_true",
            help="Record the export and lock the billing period",
        )

        history = subparsers.add_parser("history", help="Show payroll export history")
        history.add_argument("--period-id", type=parse_uuid, help="Limit to one period")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_ERROR

        configure_logging(parsed.log_level)
        return asyncio.run(self.execute(parsed))

    async def execute(self, args: argparse.Namespace) -> int:
        """Run one parsed command inside the current event loop."""
        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "create-period": self._cmd_create_period,
            "generate": self._cmd_generate,
            "process": self._cmd_process,
            "export": self._cmd_export,
            "history": self._cmd_history,
        }

        handler = handlers.get(args.command)
        if handler is None:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_ERROR

        try:
            return await handler(args)
        except PartialGenerationError as e:
            print(f"Partial generation: {e}", file=sys.stderr)
            return EXIT_PARTIAL
        except (BillingError, InvalidTransitionError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR
        finally:
            if self.session_factory is None:
                await dispose_db()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        factory = self.session_factory or init_db()[1]
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""
        engine, _ = init_db()
        await create_schema(engine)
        print("Database schema created.")
        return EXIT_OK

    async def _cmd_create_period(self, args: argparse.Namespace) -> int:
        """Create a draft billing period."""
        async with self._session() as session:
            period = await BillingPeriodService(session).create_period(args.start, args.end)
            print(f"Created billing period {period.billing_period_id} ({period.label})")
        return EXIT_OK

    async def _cmd_generate(self, args: argparse.Namespace) -> int:
        """Generate charges, keeping the period status."""
        async with self._session() as session:
            service = ChargeGenerationService(session, self.settings)
            report = await service.generate_charges(args.period_id)
        self._print_report(report)
        report.raise_for_failures()
        return EXIT_OK

    async def _cmd_process(self, args: argparse.Namespace) -> int:
        """Generate charges and advance the period."""
        async with self._session() as session:
            service = ChargeGenerationService(session, self.settings)
            report = await service.process_period(args.period_id)
        self._print_report(report)
        report.raise_for_failures()
        return EXIT_OK

    async def _cmd_export(self, args: argparse.Namespace) -> int:
        """Render the export CSV and optionally commit it."""
        async with self._session() as session:
            service = PayrollExportService(session, self.settings)
            content = await service.export_csv(args.period_id)
            record = await service.commit_export(args.period_id) if args.commit else None

        if args.output:
            with open(args.output, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            print(f"Wrote payroll export to {args.output}")
        else:
            sys.stdout.write(content)

        if record is not None:
            print(
                f"Recorded export {record.file_name}: {record.record_count} employee(s), "
                f"total {record.total_amount:.2f}",
                file=sys.stdout if args.output else sys.stderr,
            )
        return EXIT_OK

    async def _cmd_history(self, args: argparse.Namespace) -> int:
        """List committed payroll exports."""
        async with self._session() as session:
            service = PayrollExportService(session, self.settings)
            records = await service.list_exports(args.period_id)

        if not records:
            print("No exports recorded.")
            return EXIT_OK

        print(f"{'Export date':<26} {'File':<32} {'Rows':>5} {'Total':>12}  Status")
        print("-" * 88)
        for r in records:
            print(
                f"{r.export_date.isoformat():<26} {r.file_name:<32} "
                f"{r.record_count:>5} {r.total_amount:>12,.2f}  {r.status}"
            )
        return EXIT_OK

    @staticmethod
    def _print_report(report: GenerationReport) -> None:
        print(f"Billing period {report.billing_period_id} ({report.period_status})")
        print(f"  Created:  {report.created_count}")
        print(f"  Existing: {report.existing_count}")
        print(f"  Skipped:  {len(report.skipped)}")
        for item in report.skipped:
            print(f"    - {item.source_type.value} {item.source_id}: {item.reason}")
        print(f"  Failed:   {len(report.failures)}")
        for item in report.failures:
            print(f"    - {item.source_type.value} {item.source_id}: {item.reason}")
        if report.stale:
            print(f"  Stale:    {len(report.stale)} (review manually)")
            for item in report.stale:
                print(f"    - charge {item.charge_id} from {item.source_type.value} {item.source_id}")


def main() -> int:
    """CLI entry point."""
    cli = BillingCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
