"""
Analytics de exclusión: por qué se descartan propiedades.

Agrega los motivos de los matches con hard_filter_passed=False, que se
conservan como historial justamente para esto.
"""

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from brokermatch.database import MatchRepository
from brokermatch.models import ExclusionReasonCount


def summarize_exclusion_reasons(
    records: Iterable[dict], limit: int = 10
) -> list[ExclusionReasonCount]:
    """
    Cuenta motivos de exclusión.

    Returns:
        Top `limit` motivos, ordenados por cantidad y luego alfabéticamente
    """
    counts = Counter(
        (r.get("match_reason") or "").strip()
        for r in records
        if (r.get("match_reason") or "").strip()
    )
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [ExclusionReasonCount(reason=reason, count=count) for reason, count in ordered[:limit]]


class ExclusionAnalytics:
    """Consulta agregada para los dashboards de agente y manager."""

    def __init__(self, match_repo: Optional[MatchRepository] = None):
        self.match_repo = match_repo or MatchRepository()

    def top_reasons(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        buyer_ids: Optional[list[str]] = None,
        limit: int = 10,
    ) -> list[ExclusionReasonCount]:
        """Top motivos de exclusión en el rango (None = sin límite)."""
        records = self.match_repo.get_failed_records(start=start, end=end, buyer_ids=buyer_ids)
        return summarize_exclusion_reasons(records, limit=limit)
