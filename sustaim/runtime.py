"""
Sustaim: runtime entrypoint.

Configures logging, opens the persisted ledger, wires it into the HTTP API
and serves it:

    python -m sustaim.runtime
"""

from __future__ import annotations

import logging

import structlog

from sustaim.config import SustaimSettings, settings
from sustaim.ledger.service import LedgerService
from sustaim.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def configure_logging(config: SustaimSettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_service(config: SustaimSettings = settings) -> LedgerService:
    """Open (or seed) the ledger persisted at `config.database_url`."""
    log = structlog.get_logger()
    log.info("sustaim.runtime.open_ledger", database_url=config.database_url)
    store = LedgerStore(config.database_url)
    service = LedgerService.open(
        store, deployer=config.deployer, metadata_uri=config.metadata_uri
    )
    log.info(
        "sustaim.runtime.ledger_ready",
        total_issued=service.total_issued(),
        total_burned=service.total_burned(),
        num_projects=service.num_projects(),
    )
    return service


def main() -> None:
    """Serve the ledger API."""
    import uvicorn

    from sustaim.dashboard.app import app, state

    configure_logging()
    log = structlog.get_logger()
    state.ledger_service = build_service()

    log.info(
        "sustaim.runtime.serving",
        host=settings.api_host,
        port=settings.api_port,
    )
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
