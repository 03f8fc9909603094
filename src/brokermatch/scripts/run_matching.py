"""
Script para correr el matching de un comprador (entry point explícito).

Por default corre en modo preview (no persiste). Con --save reconcilia
los matches y crea las notificaciones.

Uso:
    python -m brokermatch.scripts.run_matching --buyer-id <uuid>
    python -m brokermatch.scripts.run_matching --buyer-id <uuid> --save
"""

import argparse
import asyncio
import json
import sys

import structlog

from brokermatch.config import get_settings
from brokermatch.errors import MatchingError
from brokermatch.matching import MatchingEngine
from brokermatch.scripts import configure_logging

logger = structlog.get_logger()


async def run_matching(buyer_id: str, save_results: bool) -> dict:
    """Ejecuta el matching y devuelve el payload de respuesta."""
    engine = MatchingEngine()
    result = await engine.match_buyer(buyer_id, save_results=save_results)
    return result.to_payload()


def main(argv=None):
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Matching comprador-propiedades")
    parser.add_argument("--buyer-id", required=True, help="UUID del comprador")
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persistir matches y notificar (default: preview)",
    )
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    logger.info("Iniciando matching", buyer_id=args.buyer_id, save=args.save)

    try:
        payload = asyncio.run(run_matching(args.buyer_id, args.save))
    except KeyboardInterrupt:
        logger.info("Matching interrumpido por usuario")
        sys.exit(130)
    except MatchingError as e:
        logger.error(
            "Error en matching",
            error=str(e),
            error_type=type(e).__name__,
            retryable=e.retryable,
        )
        # 75 = EX_TEMPFAIL: el caller puede reintentar
        sys.exit(75 if e.retryable else 1)

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    logger.info(
        "Matching completado",
        matches=len(payload["matches"]),
        failed=payload["failed_count"],
    )


if __name__ == "__main__":
    main()
