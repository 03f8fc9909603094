"""
Motor de matching entre compradores y propiedades.

Implementa:
- Filtro Hard: descarta propiedades fuera de criterios absolutos
- Ranking Soft: el oráculo LLM puntúa los candidatos contra el perfil de gusto
- Reconciliación: persiste excluidos y rankeados en la tabla matches
- Notificación: avisa al agente los matches con score alto
"""

from typing import Optional

import structlog

from brokermatch.analysis import BaseRanker, LLMPropertyRanker
from brokermatch.config import Settings, get_settings
from brokermatch.database import (
    BuyerPropertyRepository,
    BuyerRepository,
    PropertyRepository,
)
from brokermatch.errors import BuyerNotFoundError, InvalidRequestError
from brokermatch.matching.hard_filters import apply_hard_filters, exclude_assigned
from brokermatch.matching.notifier import NotificationDispatcher
from brokermatch.matching.reconciler import MatchReconciler
from brokermatch.models import (
    AgentFeedback,
    Buyer,
    EnrichedMatch,
    MatchingResult,
    Property,
    RankedMatch,
    NO_CANDIDATES_MESSAGE,
    NO_TASTE_PROFILE_MESSAGE,
)

logger = structlog.get_logger()


class MatchingEngine:
    """
    Motor de matching con filtros hard + ranking del oráculo.

    Flujo de una corrida (un comprador):
    1. Cargar comprador, asignaciones previas e inventario disponible
    2. Sacar las ya asignadas y aplicar filtros hard
    3. Rankear los que pasan con el oráculo
    4. Si save_results: reconciliar matches y notificar

    Todo se calcula en memoria antes de escribir: si el oráculo falla
    o la corrida se cancela, no queda estado parcial.
    """

    def __init__(
        self,
        ranker: Optional[BaseRanker] = None,
        buyer_repo: Optional[BuyerRepository] = None,
        property_repo: Optional[PropertyRepository] = None,
        assignment_repo: Optional[BuyerPropertyRepository] = None,
        reconciler: Optional[MatchReconciler] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.buyer_repo = buyer_repo or BuyerRepository()
        self.property_repo = property_repo or PropertyRepository()
        self.assignment_repo = assignment_repo or BuyerPropertyRepository()
        self.reconciler = reconciler or MatchReconciler()
        self.dispatcher = dispatcher or NotificationDispatcher(buyer_repo=self.buyer_repo)
        self._ranker = ranker

    @property
    def ranker(self) -> BaseRanker:
        # Lazy: el proveedor LLM solo se crea si hay algo para rankear
        if self._ranker is None:
            self._ranker = LLMPropertyRanker(settings=self.settings)
        return self._ranker

    def load_buyer(self, buyer_id: str) -> Buyer:
        """
        Carga y valida un comprador.

        Raises:
            InvalidRequestError: buyer_id vacío
            BuyerNotFoundError: el comprador no existe
            InvalidCriteriaError: criterios inconsistentes
        """
        if not buyer_id or not str(buyer_id).strip():
            raise InvalidRequestError("buyer_id is required")

        row = self.buyer_repo.get_by_id(buyer_id)
        if not row:
            raise BuyerNotFoundError(buyer_id)
        return Buyer.from_db_row(row)

    def _load_assignments(self, buyer_id: str) -> tuple[set[str], list[AgentFeedback]]:
        rows = self.assignment_repo.get_for_buyer(buyer_id)
        assigned_ids = {r["property_id"] for r in rows if r.get("property_id")}
        feedback = [
            AgentFeedback(feedback=r["agent_feedback"].strip(), status=r.get("status"))
            for r in rows
            if (r.get("agent_feedback") or "").strip()
        ]
        return assigned_ids, feedback

    def _load_inventory(self) -> list[Property]:
        return [Property.model_validate(row) for row in self.property_repo.get_available()]

    async def match_buyer(self, buyer_id: str, save_results: bool = False) -> MatchingResult:
        """
        Corre el pipeline completo para un comprador.

        Args:
            buyer_id: UUID del comprador
            save_results: False = preview (no persiste nada)

        Returns:
            MatchingResult con los matches enriquecidos y el eco de filtros

        Raises:
            InvalidRequestError, BuyerNotFoundError, InvalidCriteriaError: terminales
            RankingError: oráculo caído/limitado (reintentable, nada persistido)
            PersistenceError: falla de escritura (reintentable)
        """
        buyer = self.load_buyer(buyer_id)
        filters_applied = buyer.criteria.describe()
        log = logger.bind(buyer_id=buyer.id, save_results=save_results)

        if buyer.taste.is_empty:
            log.info("Comprador sin perfil de gusto, no se rankea")
            return MatchingResult(
                buyer_id=buyer.id,
                buyer_name=buyer.full_name,
                filters_applied=filters_applied,
                message=NO_TASTE_PROFILE_MESSAGE,
            )

        assigned_ids, feedback = self._load_assignments(buyer.id)
        candidates = exclude_assigned(self._load_inventory(), assigned_ids)
        passed, failed = apply_hard_filters(
            buyer.criteria,
            candidates,
            budget_elasticity=self.settings.budget_elasticity,
        )
        log.info(
            "Candidatos evaluados",
            assigned=len(assigned_ids),
            candidates=len(candidates),
            passed=len(passed),
            failed=len(failed),
        )

        result = MatchingResult(
            buyer_id=buyer.id,
            buyer_name=buyer.full_name,
            total_filtered=len(passed),
            failed_count=len(failed),
            filters_applied=filters_applied,
            saved=save_results,
        )

        if not passed:
            result.message = NO_CANDIDATES_MESSAGE
            if save_results:
                result.committed_count = self.reconciler.reconcile(buyer.id, failed, [])
            return result

        ranked = await self.ranker.rank(buyer, passed, feedback)

        by_id = {p.id: p for p in passed}
        # Un upsert no puede tocar la misma clave dos veces: queda la primera
        unique: dict[str, RankedMatch] = {}
        for m in ranked:
            if m.property_id in by_id and m.property_id not in unique:
                unique[m.property_id] = m
        ranked = list(unique.values())[: self.settings.max_ranked_results]
        result.matches = [
            EnrichedMatch(
                property_id=m.property_id,
                match_score=m.match_score,
                match_reason=m.match_reason,
                property=by_id[m.property_id],
            )
            for m in ranked
        ]

        if save_results:
            result.committed_count = self.reconciler.reconcile(buyer.id, failed, ranked)
            result.notifications_created = self.dispatcher.dispatch(buyer.id, ranked)

        log.info(
            "Matching completado",
            matches=len(result.matches),
            committed=result.committed_count,
            notifications=result.notifications_created,
        )
        return result
