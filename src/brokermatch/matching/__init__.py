"""
Motor de matching.

Combina filtros hard y ranking del oráculo para encontrar
las propiedades más relevantes para cada comprador.
"""

from brokermatch.matching.engine import MatchingEngine
from brokermatch.matching.hard_filters import apply_hard_filters, evaluate
from brokermatch.matching.reconciler import MatchReconciler
from brokermatch.matching.notifier import NotificationDispatcher
from brokermatch.matching.triggers import MatchTrigger
from brokermatch.matching.analytics import ExclusionAnalytics, summarize_exclusion_reasons

__all__ = [
    "MatchingEngine",
    "MatchReconciler",
    "NotificationDispatcher",
    "MatchTrigger",
    "ExclusionAnalytics",
    "apply_hard_filters",
    "evaluate",
    "summarize_exclusion_reasons",
]
