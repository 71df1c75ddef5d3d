"""
Authority Ledger — Process entry point.

Starts the document authority service:
1. Configure structured logging
2. Initialize the event ledger (creates schema + genesis entry)
3. Build the authority service and wire it into the HTTP API
4. Serve the API and run the ledger integrity heartbeat side by side

Usage:
    python -m authority_ledger.orchestrator
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
import uvicorn

from authority_ledger.config import settings

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(level=logging.getLevelName(settings.log_level), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def heartbeat(ledger, interval_seconds: int) -> None:
    """Periodically re-verify the event ledger hash chain."""
    log = structlog.get_logger()
    while True:
        is_valid, entries, msg = ledger.verify_chain()
        if not is_valid:
            log.critical(
                "authority_ledger.orchestrator.integrity_failure",
                message=msg,
                entries=entries,
            )
        else:
            log.debug(
                "authority_ledger.orchestrator.heartbeat",
                ledger_entries=entries,
                chain_valid=is_valid,
            )
        await asyncio.sleep(interval_seconds)


async def main() -> None:
    """Start the ledger, the API server and the heartbeat."""
    configure_logging()
    log = structlog.get_logger()

    log.info(
        "authority_ledger.orchestrator.starting",
        system_admin=settings.system_admin_address,
        core_address=settings.core_address,
    )

    # Phase 1: Event ledger
    from authority_ledger.ledger.service import EventLedgerService

    ledger = EventLedgerService(settings.database_url)
    ledger.initialize()
    log.info("authority_ledger.orchestrator.ledger_ready", entries=ledger.get_entry_count())

    # Phase 2: Authority service, rebuilt from the recorded history
    from authority_ledger.service import DocumentAuthority

    authority = DocumentAuthority.from_ledger(ledger)
    log.info(
        "authority_ledger.orchestrator.authority_ready",
        replayed=len(authority.events),
        divisions=len(authority.divisions),
        officers=len(authority.officers),
    )

    # Phase 3: Wire up API state
    from authority_ledger.api.app import app, state as api_state

    api_state.authority = authority

    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.api_host, port=settings.api_port, log_config=None)
    )
    log.info(
        "authority_ledger.orchestrator.running",
        host=settings.api_host,
        port=settings.api_port,
    )

    heartbeat_task = asyncio.create_task(heartbeat(ledger, settings.heartbeat_seconds))
    try:
        await server.serve()
    except Exception as e:
        log.exception("authority_ledger.orchestrator.fatal_error", error=str(e))
        sys.exit(1)
    finally:
        heartbeat_task.cancel()
        log.info("authority_ledger.orchestrator.shutdown")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
