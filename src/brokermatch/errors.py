"""
Excepciones del motor de matching.

Cada error indica si la operación puede reintentarse (`retryable`),
para que el caller decida si reencolar el trigger o avisar al operador.
"""


class MatchingError(Exception):
    """Error base del motor de matching."""

    retryable: bool = False


# Validación de entrada (terminal)

class InvalidRequestError(MatchingError):
    """Request inválido (ej: buyer_id vacío)."""


class BuyerNotFoundError(MatchingError):
    """El comprador no existe."""

    def __init__(self, buyer_id: str):
        super().__init__(f"Buyer not found: {buyer_id}")
        self.buyer_id = buyer_id


class InvalidCriteriaError(MatchingError, ValueError):
    """Criterios del comprador inconsistentes (ej: budget_min > budget_max)."""


# Dependencia upstream: oráculo de ranking (reintentable)

class RankingError(MatchingError):
    """Error base del oráculo de ranking."""

    retryable = True


class RankingUnavailableError(RankingError):
    """Oráculo caído, timeout o error 5xx."""


class RankingRateLimitedError(RankingError):
    """Rate limit del oráculo (HTTP 429)."""


class RankingQuotaExceededError(RankingError):
    """Cuota o créditos agotados en el oráculo (HTTP 402)."""


# Persistencia (reintentable: upserts y deletes son idempotentes)

class PersistenceError(MatchingError):
    """Falló una escritura o lectura en Supabase."""

    retryable = True
