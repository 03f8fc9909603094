"""
Repositorios para operaciones en Supabase.

Cada repositorio maneja una tabla/entidad específica. El motor solo lee
buyers, buyer_agents, buyer_properties y properties; escribe únicamente
matches y notifications.
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from brokermatch.config import PROPERTY_STATUS_AVAILABLE
from brokermatch.database.supabase_client import get_supabase_client, SupabaseClient
from brokermatch.errors import PersistenceError
from brokermatch.models import MatchRecord, Notification

logger = structlog.get_logger()

BUYER_COLUMNS = (
    "id, full_name, "
    "global_liked_profile, global_disliked_profile, client_match_summary, "
    "budget_min, budget_max, min_rooms, "
    "target_cities, target_neighborhoods, "
    "required_features, floor_min, floor_max"
)

PROPERTY_COLUMNS = (
    "id, address, city, neighborhood, price, rooms, size_sqm, floor, "
    "has_safe_room, has_sun_balcony, parking_spots, has_elevator, "
    "description, status"
)


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_supabase_client()

    @property
    def client(self) -> SupabaseClient:
        return self._client

    def _execute(self, query, operation: str, **context) -> list[dict]:
        """
        Ejecuta una query y traduce cualquier falla del store.

        Raises:
            PersistenceError: Si Supabase/PostgREST falla
        """
        try:
            response = query.execute()
        except Exception as e:
            logger.error(
                "Error en Supabase",
                table=getattr(self, "TABLE", None),
                operation=operation,
                error=str(e),
                **context,
            )
            raise PersistenceError(f"{operation} falló: {e}") from e
        return response.data or []


class BuyerRepository(BaseRepository):
    """Repositorio de compradores (solo lectura)."""

    TABLE = "buyers"
    AGENTS_TABLE = "buyer_agents"

    def get_by_id(self, buyer_id: str) -> Optional[dict]:
        """Obtiene un comprador con criterios y perfil de gusto."""
        rows = self._execute(
            self.client.table(self.TABLE)
            .select(BUYER_COLUMNS)
            .eq("id", buyer_id)
            .limit(1),
            "get_buyer",
            buyer_id=buyer_id,
        )
        return rows[0] if rows else None

    def get_all(self) -> list[dict]:
        """Obtiene todos los compradores (para el fan-out por cambio de propiedad)."""
        return self._execute(
            self.client.table(self.TABLE).select(BUYER_COLUMNS),
            "get_buyers",
        )

    def get_primary_agent_id(self, buyer_id: str) -> Optional[str]:
        """Agente principal del comprador: la primera relación en buyer_agents."""
        rows = self._execute(
            self.client.table(self.AGENTS_TABLE)
            .select("agent_id")
            .eq("buyer_id", buyer_id)
            .limit(1),
            "get_primary_agent",
            buyer_id=buyer_id,
        )
        if not rows:
            return None
        return rows[0].get("agent_id")


class PropertyRepository(BaseRepository):
    """Repositorio del inventario de propiedades (solo lectura)."""

    TABLE = "properties"

    def get_available(self) -> list[dict]:
        """Obtiene todas las propiedades disponibles."""
        return self._execute(
            self.client.table(self.TABLE)
            .select(PROPERTY_COLUMNS)
            .eq("status", PROPERTY_STATUS_AVAILABLE),
            "get_available_properties",
        )

    def get_by_id(self, property_id: str) -> Optional[dict]:
        rows = self._execute(
            self.client.table(self.TABLE)
            .select(PROPERTY_COLUMNS)
            .eq("id", property_id)
            .limit(1),
            "get_property",
            property_id=property_id,
        )
        return rows[0] if rows else None


class BuyerPropertyRepository(BaseRepository):
    """Propiedades ya asignadas a cada comprador, con feedback del agente."""

    TABLE = "buyer_properties"

    def get_for_buyer(self, buyer_id: str) -> list[dict]:
        """Asignaciones del comprador (property_id, agent_feedback, status)."""
        return self._execute(
            self.client.table(self.TABLE)
            .select("property_id, agent_feedback, status")
            .eq("buyer_id", buyer_id),
            "get_assigned_properties",
            buyer_id=buyer_id,
        )


class MatchRepository(BaseRepository):
    """Repositorio de matches, clave (buyer_id, property_id)."""

    TABLE = "matches"
    CONFLICT_KEY = "buyer_id,property_id"

    def upsert_many(self, records: list[MatchRecord]) -> int:
        """
        Inserta o actualiza matches; last write wins por clave.

        Returns:
            Cantidad de filas enviadas
        """
        if not records:
            return 0
        self._execute(
            self.client.table(self.TABLE).upsert(
                [r.to_db_dict() for r in records],
                on_conflict=self.CONFLICT_KEY,
            ),
            "upsert_matches",
            buyer_id=records[0].buyer_id,
            count=len(records),
        )
        return len(records)

    def delete_stale_passing(
        self, buyer_id: str, keep_property_ids: Iterable[str]
    ) -> int:
        """
        Borra los matches que pasaron filtros hard y ya no están rankeados.

        Nunca toca registros con hard_filter_passed=False (historial de exclusión).

        Returns:
            Cantidad de filas borradas
        """
        keep = sorted(set(keep_property_ids))
        query = (
            self.client.table(self.TABLE)
            .delete()
            .eq("buyer_id", buyer_id)
            .eq("hard_filter_passed", True)
        )
        if keep:
            query = query.not_.in_("property_id", keep)

        deleted = self._execute(query, "delete_stale_matches", buyer_id=buyer_id)
        return len(deleted)

    def get_failed_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        buyer_ids: Optional[list[str]] = None,
    ) -> list[dict]:
        """Registros excluidos por filtros hard, para analytics."""
        query = (
            self.client.table(self.TABLE)
            .select("buyer_id, property_id, match_reason, updated_at")
            .eq("hard_filter_passed", False)
        )
        if start is not None:
            query = query.gte("updated_at", start.isoformat())
        if end is not None:
            query = query.lte("updated_at", end.isoformat())
        if buyer_ids is not None:
            if not buyer_ids:
                return []
            query = query.in_("buyer_id", buyer_ids)
        return self._execute(query, "get_failed_matches")


class NotificationRepository(BaseRepository):
    """Repositorio de notificaciones para agentes (append-only)."""

    TABLE = "notifications"

    def create_many(self, notifications: list[Notification]) -> int:
        """Registra notificaciones. Nunca actualiza ni borra."""
        if not notifications:
            return 0
        self._execute(
            self.client.table(self.TABLE).insert(
                [n.to_db_dict() for n in notifications]
            ),
            "create_notifications",
            buyer_id=notifications[0].buyer_id,
            count=len(notifications),
        )
        return len(notifications)
