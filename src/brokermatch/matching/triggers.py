"""
Triggers del matching por eventos.

- buyer_filter_change: el comprador editó sus criterios, se re-matchea solo él.
  Los errores se propagan tal cual (retryable, rate limit vs cuota).
- property_change: se creó/editó una propiedad, se re-matchea a todos los
  compradores con perfil de gusto cuyo pre-filtro (ciudad + presupuesto) la admite.
  La falla de un comprador se cuenta por tipo y no frena al resto.

Las corridas de un mismo comprador se serializan con un lock por comprador
para no gastar llamadas al oráculo en triggers dobles.
"""

import asyncio
from collections import Counter
from typing import Optional

import structlog
from pydantic import ValidationError

from brokermatch.config import get_settings
from brokermatch.errors import InvalidCriteriaError, InvalidRequestError, MatchingError
from brokermatch.matching.engine import MatchingEngine
from brokermatch.matching.hard_filters import could_match
from brokermatch.models import Buyer, MatchingResult, Property

logger = structlog.get_logger()

EVENT_BUYER_FILTER_CHANGE = "buyer_filter_change"
EVENT_PROPERTY_CHANGE = "property_change"


class MatchTrigger:
    """Entry point event-driven: siempre persiste resultados."""

    def __init__(
        self,
        engine: Optional[MatchingEngine] = None,
        concurrency: Optional[int] = None,
    ):
        self.engine = engine or MatchingEngine()
        self.concurrency = concurrency or get_settings().trigger_concurrency
        self._locks: dict[str, asyncio.Lock] = {}
        # Corridas en curso o esperando por comprador; el lock se libera en 0
        self._lock_users: Counter = Counter()

    async def run_for_buyer(self, buyer_id: str) -> MatchingResult:
        """Corre el matching persistente, serializado por comprador."""
        lock = self._locks.get(buyer_id)
        if lock is None:
            lock = self._locks[buyer_id] = asyncio.Lock()
        self._lock_users[buyer_id] += 1
        try:
            async with lock:
                return await self.engine.match_buyer(buyer_id, save_results=True)
        finally:
            self._lock_users[buyer_id] -= 1
            if self._lock_users[buyer_id] <= 0:
                del self._lock_users[buyer_id]
                del self._locks[buyer_id]

    async def on_buyer_criteria_change(self, buyer_id: str) -> MatchingResult:
        """
        El comprador editó sus filtros hard.

        Raises:
            MatchingError: Cualquier falla de la corrida, sin envolver
        """
        logger.info("Cambio de criterios, re-matcheando", buyer_id=buyer_id)
        return await self.run_for_buyer(buyer_id)

    def buyers_for_property(self, prop: Property) -> list[str]:
        """Compradores con perfil de gusto que podrían matchear la propiedad."""
        elasticity = self.engine.settings.budget_elasticity
        buyer_ids = []
        for row in self.engine.buyer_repo.get_all():
            try:
                buyer = Buyer.from_db_row(row)
            except InvalidCriteriaError as e:
                logger.warning("Comprador con criterios inválidos", buyer_id=row.get("id"), error=str(e))
                continue
            if buyer.taste.is_empty:
                continue
            if could_match(buyer.criteria, prop, elasticity):
                buyer_ids.append(buyer.id)
        return buyer_ids

    async def on_property_change(self, record: dict) -> dict:
        """
        Se creó o editó una propiedad: re-matchea a los compradores candidatos.

        Returns:
            Estadísticas del procesamiento
        """
        if set(record) <= {"id"}:
            # Solo vino el id: leer la fila completa
            row = self.engine.property_repo.get_by_id(record.get("id"))
            if not row:
                raise InvalidRequestError(f"Propiedad no encontrada: {record.get('id')}")
            record = row

        try:
            prop = Property.model_validate(record)
        except ValidationError as e:
            raise InvalidRequestError(f"Registro de propiedad inválido: {e}") from e

        buyer_ids = self.buyers_for_property(prop)
        logger.info(
            "Cambio de propiedad",
            property_id=prop.id,
            buyers_to_rematch=len(buyer_ids),
        )
        return await self.run_many(buyer_ids)

    async def run_many(self, buyer_ids: list[str]) -> dict:
        """
        Re-matchea varios compradores; la falla de uno no frena al resto.

        Returns:
            Estadísticas: totales, errores por tipo y cuántos son reintentables
        """
        buyer_ids = list(dict.fromkeys(buyer_ids))
        stats = {
            "buyers_triggered": len(buyer_ids),
            "buyers_matched": 0,
            "notifications_created": 0,
            "errors": 0,
            "retryable_errors": 0,
            "errors_by_type": {},
        }
        semaphore = asyncio.Semaphore(self.concurrency)

        def _count_error(buyer_id: str, error: Exception, retryable: bool):
            error_type = type(error).__name__
            stats["errors"] += 1
            if retryable:
                stats["retryable_errors"] += 1
            stats["errors_by_type"][error_type] = stats["errors_by_type"].get(error_type, 0) + 1
            logger.error(
                "Falló el matching del comprador",
                buyer_id=buyer_id,
                error=str(error),
                error_type=error_type,
                retryable=retryable,
            )

        async def _run(buyer_id: str):
            async with semaphore:
                try:
                    result = await self.run_for_buyer(buyer_id)
                except MatchingError as e:
                    _count_error(buyer_id, e, e.retryable)
                    return
                except Exception as e:
                    _count_error(buyer_id, e, False)
                    return
                stats["buyers_matched"] += 1
                stats["notifications_created"] += result.notifications_created

        await asyncio.gather(*(_run(b) for b in buyer_ids))
        logger.info("Triggers procesados", **stats)
        return stats

    async def handle_event(self, event: dict) -> dict:
        """
        Despacha un evento {"type": ..., "record": {...}}.

        Raises:
            InvalidRequestError: Tipo de evento desconocido o sin record
            MatchingError: Falla del matching en un buyer_filter_change
        """
        event_type = event.get("type")
        record = event.get("record") or {}

        if event_type == EVENT_BUYER_FILTER_CHANGE:
            buyer_id = record.get("id")
            if not buyer_id:
                raise InvalidRequestError("record.id is required")
            result = await self.on_buyer_criteria_change(buyer_id)
            return {
                "buyers_triggered": 1,
                "buyers_matched": 1,
                "notifications_created": result.notifications_created,
                "errors": 0,
                "retryable_errors": 0,
                "errors_by_type": {},
            }

        if event_type == EVENT_PROPERTY_CHANGE:
            if not record.get("id"):
                raise InvalidRequestError("record.id is required")
            return await self.on_property_change(record)

        raise InvalidRequestError(f"Tipo de evento no soportado: {event_type}")
