"""
Reconciliación de matches.

Converge la tabla matches con el resultado recién calculado:
- Excluidos por filtros hard: upsert con hard_filter_passed=False, score 0
- Rankeados: upsert con hard_filter_passed=True
- Pasados que ya no están rankeados: se borran

El orden es upsert -> delete: si el delete falla, a lo sumo quedan
matches viejos, nunca falta uno vigente. Ambos pasos son idempotentes,
así que reintentar la reconciliación completa siempre es correcto.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from brokermatch.database import MatchRepository
from brokermatch.models import FilterOutcome, MatchRecord, RankedMatch

logger = structlog.get_logger()


class MatchReconciler:
    """Persiste el resultado de una corrida de matching."""

    def __init__(self, match_repo: Optional[MatchRepository] = None):
        self.match_repo = match_repo or MatchRepository()

    def build_records(
        self,
        buyer_id: str,
        failed: Sequence[FilterOutcome],
        ranked: Sequence[RankedMatch],
        updated_at: Optional[str] = None,
    ) -> tuple[list[MatchRecord], list[MatchRecord]]:
        """Arma las filas a upsertear: (excluidas, rankeadas)."""
        updated_at = updated_at or datetime.now(timezone.utc).isoformat()

        failed_records = [
            MatchRecord(
                buyer_id=buyer_id,
                property_id=outcome.property_id,
                match_score=0,
                match_reason=outcome.reason,
                hard_filter_passed=False,
                updated_at=updated_at,
            )
            for outcome in failed
        ]
        ranked_records = [
            MatchRecord(
                buyer_id=buyer_id,
                property_id=match.property_id,
                match_score=match.match_score,
                match_reason=match.match_reason,
                hard_filter_passed=True,
                updated_at=updated_at,
            )
            for match in ranked
        ]
        return failed_records, ranked_records

    def reconcile(
        self,
        buyer_id: str,
        failed: Sequence[FilterOutcome],
        ranked: Sequence[RankedMatch],
    ) -> int:
        """
        Reconcilia los matches persistidos de un comprador.

        Args:
            buyer_id: UUID del comprador
            failed: Outcomes que fallaron los filtros hard
            ranked: Matches rankeados por el oráculo (puede ser vacío)

        Returns:
            Filas upserteadas (igual en cada re-ejecución con el mismo input)

        Raises:
            PersistenceError: Si falla alguna escritura (reintentable)
        """
        failed_records, ranked_records = self.build_records(buyer_id, failed, ranked)

        committed = self.match_repo.upsert_many(failed_records)
        # Ranking vacío: no hay upsert, pero igual se limpian los pasados viejos
        committed += self.match_repo.upsert_many(ranked_records)

        deleted = self.match_repo.delete_stale_passing(
            buyer_id, [r.property_id for r in ranked_records]
        )

        logger.info(
            "Matches reconciliados",
            buyer_id=buyer_id,
            failed=len(failed_records),
            ranked=len(ranked_records),
            stale_deleted=deleted,
        )
        return committed
