"""
Modelos de datos del sistema.

- Lectura: Buyer (criterios + perfil de gusto), Property
- Escritura: MatchRecord, Notification
"""

from brokermatch.models.buyer import (
    Buyer,
    BuyerCriteria,
    TasteProfile,
    RequiredFeature,
)
from brokermatch.models.property import Property
from brokermatch.models.match import (
    AgentFeedback,
    EnrichedMatch,
    ExclusionReasonCount,
    FilterOutcome,
    MatchingResult,
    MatchRecord,
    Notification,
    RankedMatch,
    NO_CANDIDATES_MESSAGE,
    NO_TASTE_PROFILE_MESSAGE,
)

__all__ = [
    # Comprador
    "Buyer",
    "BuyerCriteria",
    "TasteProfile",
    "RequiredFeature",
    # Inventario
    "Property",
    # Matching
    "AgentFeedback",
    "EnrichedMatch",
    "ExclusionReasonCount",
    "FilterOutcome",
    "MatchingResult",
    "MatchRecord",
    "Notification",
    "RankedMatch",
    "NO_CANDIDATES_MESSAGE",
    "NO_TASTE_PROFILE_MESSAGE",
]
