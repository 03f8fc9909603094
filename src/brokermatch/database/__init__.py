"""
Módulo de base de datos.

Provee acceso a Supabase y los repositorios del motor de matching.
"""

from brokermatch.database.supabase_client import get_supabase_client, SupabaseClient
from brokermatch.database.repositories import (
    BuyerRepository,
    PropertyRepository,
    BuyerPropertyRepository,
    MatchRepository,
    NotificationRepository,
)

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "BuyerRepository",
    "PropertyRepository",
    "BuyerPropertyRepository",
    "MatchRepository",
    "NotificationRepository",
]
