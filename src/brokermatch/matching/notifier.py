"""
Notificaciones al agente por matches de score alto.
"""

from typing import Optional, Sequence

import structlog

from brokermatch.config import get_settings
from brokermatch.database import BuyerRepository, NotificationRepository
from brokermatch.models import Notification, RankedMatch

logger = structlog.get_logger()


class NotificationDispatcher:
    """
    Crea una notificación por cada match con score >= threshold.

    No deduplica contra corridas anteriores: un score alto repetido
    vuelve a aparecerle al agente. El estado leído/no leído lo maneja
    el dashboard.
    """

    def __init__(
        self,
        buyer_repo: Optional[BuyerRepository] = None,
        notification_repo: Optional[NotificationRepository] = None,
        threshold: Optional[int] = None,
    ):
        self.buyer_repo = buyer_repo or BuyerRepository()
        self.notification_repo = notification_repo or NotificationRepository()
        self.threshold = threshold or get_settings().notification_threshold

    def dispatch(
        self,
        buyer_id: str,
        ranked: Sequence[RankedMatch],
        agent_id: Optional[str] = None,
    ) -> int:
        """
        Notifica al agente del comprador los matches destacados.

        Args:
            buyer_id: UUID del comprador
            ranked: Matches rankeados (ya pasaron filtros hard)
            agent_id: Agente destino (default: agente principal del comprador)

        Returns:
            Cantidad de notificaciones creadas
        """
        # Una sola notificación por propiedad en cada corrida
        qualifying: dict[str, RankedMatch] = {}
        for m in ranked:
            if m.match_score >= self.threshold and m.property_id not in qualifying:
                qualifying[m.property_id] = m
        if not qualifying:
            return 0

        agent_id = agent_id or self.buyer_repo.get_primary_agent_id(buyer_id)
        if not agent_id:
            logger.info("Comprador sin agente asignado, no se notifica", buyer_id=buyer_id)
            return 0

        notifications = [
            Notification(
                buyer_id=buyer_id,
                agent_id=agent_id,
                property_id=m.property_id,
                match_score=m.match_score,
                match_reason=m.match_reason,
            )
            for m in qualifying.values()
        ]
        created = self.notification_repo.create_many(notifications)

        logger.info(
            "Notificaciones creadas",
            buyer_id=buyer_id,
            agent_id=agent_id,
            count=created,
        )
        return created
