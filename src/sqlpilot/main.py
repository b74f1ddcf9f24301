"""
main.py — SQLPilot Entry Point

Usage:
    sqlpilot "Which artist has the most tracks?"
    sqlpilot "Drop the staging table" --role admin
    sqlpilot "..." --max-steps 5 --log-level DEBUG
    sqlpilot "..." --config path/to/config.yaml --db-url sqlite+aiosqlite:///./chinook.db
    python -m sqlpilot "..."
"""

from __future__ import annotations

# ─────────────────────────────────────────────────────────────────────────────
# Load environment variables before settings are read
# ─────────────────────────────────────────────────────────────────────────────

from dotenv import load_dotenv

load_dotenv()

# ─────────────────────────────────────────────────────────────────────────────
import argparse
import asyncio
import sys
from typing import Optional


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sqlpilot",
        description="SQLPilot — natural-language questions answered against a SQL database",
    )
    parser.add_argument(
        "question",
        help="The question or instruction to answer against the database.",
    )
    parser.add_argument(
        "--role",
        dest="roles",
        action="append",
        default=None,
        help="Caller role (repeatable). 'admin' unlocks writes; default comes from config.",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Step budget for this run (overrides agent.max_steps).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config/config.yaml, then the packaged defaults).",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the log level from config.yaml.",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="SQLAlchemy async database URL (overrides DATABASE_URL and config.yaml).",
    )
    parser.add_argument(
        "--user",
        default="anonymous",
        help="Caller id recorded in the audit log.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show reflector assessments, SQL text and the action list.",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load settings and configure logging. Exits with code 1 on bad config.
    """
    from pydantic import ValidationError

    from sqlpilot.config.settings import ConfigError, load_settings
    from sqlpilot.observability.logger import get_logger, setup_logging

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {e['loc'][-1] if e['loc'] else '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except OSError as exc:
        print(f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n", file=sys.stderr)
        sys.exit(1)
    except (ValueError, TypeError) as exc:
        print(f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n", file=sys.stderr)
        sys.exit(1)

    if args.db_url:
        settings = settings.model_copy(update={"database_url": args.db_url})

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("sqlpilot.main")
    return settings, log


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings, log = bootstrap(args)

    if args.max_steps is not None and args.max_steps < 0:
        print("❌  --max-steps must be zero or positive.", file=sys.stderr)
        return 2

    log.info(
        "sqlpilot.starting",
        llm_provider=settings.default_llm_provider,
        llm_model=settings.default_llm_model,
        roles=args.roles,
        max_steps=args.max_steps,
    )

    from sqlalchemy.exc import SQLAlchemyError

    from sqlpilot.brain.llm_client import LLMError
    from sqlpilot.interfaces.cli import run_question

    try:
        return await run_question(
            settings,
            args.question,
            roles=args.roles,
            max_steps=args.max_steps,
            user_id=args.user,
            verbose=args.verbose,
        )
    except (LLMError, SQLAlchemyError, ImportError, ValueError) as e:
        # Raised while building the kernel: bad provider, driver or URL
        log.error("sqlpilot.startup_failed", error=str(e), error_type=type(e).__name__)
        print(f"\n❌  Startup failed: {type(e).__name__}: {e}\n", file=sys.stderr)
        return 1


def cli() -> None:
    """Console-script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    cli()
