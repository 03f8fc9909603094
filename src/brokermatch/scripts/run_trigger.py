"""
Script para procesar un evento de matching (entry point event-driven).

Uso:
    python -m brokermatch.scripts.run_trigger --type buyer_filter_change --record-id <uuid>
    python -m brokermatch.scripts.run_trigger --event-file evento.json
"""

import argparse
import asyncio
import json
import sys

import structlog

from brokermatch.config import get_settings
from brokermatch.errors import MatchingError
from brokermatch.matching import MatchTrigger
from brokermatch.scripts import configure_logging

logger = structlog.get_logger()


def _load_event(args) -> dict:
    if args.event_file:
        with open(args.event_file, encoding="utf-8") as f:
            return json.load(f)
    if not args.type or not args.record_id:
        raise ValueError("Usar --event-file o --type junto con --record-id")
    return {"type": args.type, "record": {"id": args.record_id}}


def main(argv=None):
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Procesa un evento de matching")
    parser.add_argument(
        "--type",
        choices=["buyer_filter_change", "property_change"],
        help="Tipo de evento",
    )
    parser.add_argument("--record-id", help="ID del comprador o propiedad")
    parser.add_argument("--event-file", help="JSON con {type, record}")
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)

    try:
        event = _load_event(args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    try:
        stats = asyncio.run(MatchTrigger().handle_event(event))
    except KeyboardInterrupt:
        logger.info("Trigger interrumpido por usuario")
        sys.exit(130)
    except MatchingError as e:
        logger.error(
            "Error procesando evento",
            error=str(e),
            error_type=type(e).__name__,
            retryable=e.retryable,
            event_type=event.get("type"),
        )
        # 75 = EX_TEMPFAIL: el caller puede reintentar
        sys.exit(75 if e.retryable else 1)

    logger.info("Evento procesado", **stats)
    if stats.get("retryable_errors", 0):
        sys.exit(75)
    sys.exit(0 if stats.get("errors", 0) == 0 else 1)


if __name__ == "__main__":
    main()
