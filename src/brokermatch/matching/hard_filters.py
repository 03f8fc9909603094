"""
Filtros hard comprador-propiedad.

Funciones puras, sin acceso a base de datos ni LLM. Cada propiedad
candidata produce un FilterOutcome (pasa o falla con motivo), que se
persiste igual para que el agente vea por qué se excluyó.

Orden fijo de evaluación (la primera falla gana):
1. Presupuesto (con elasticidad)
2. Habitaciones mínimas
3. Ciudad
4. Características requeridas
5. Rango de pisos
6. Barrio (solo si el comprador indicó barrios)
"""

from typing import Iterable, Optional

import structlog

from brokermatch.models import BuyerCriteria, FilterOutcome, Property, RequiredFeature

logger = structlog.get_logger()

DEFAULT_BUDGET_ELASTICITY = 0.2

REASON_BELOW_BUDGET = "below budget"
REASON_ABOVE_BUDGET = "above budget"
REASON_CITY_MISMATCH = "city mismatch"
REASON_NEIGHBORHOOD_MISMATCH = "neighborhood mismatch"

FEATURE_FAILURE_REASONS = {
    RequiredFeature.SAFE_ROOM: "no safe room",
    RequiredFeature.SUN_BALCONY: "no sun balcony",
    RequiredFeature.ELEVATOR: "no elevator",
    RequiredFeature.PARKING: "no parking",
}


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _check_budget(
    criteria: BuyerCriteria, prop: Property, elasticity: float
) -> Optional[str]:
    if criteria.budget_min is not None:
        if prop.price is None or prop.price < criteria.budget_min * (1 - elasticity):
            return REASON_BELOW_BUDGET
    if criteria.budget_max is not None:
        if prop.price is None or prop.price > criteria.budget_max * (1 + elasticity):
            return REASON_ABOVE_BUDGET
    return None


def _check_rooms(criteria: BuyerCriteria, prop: Property) -> Optional[str]:
    if criteria.min_rooms is None:
        return None
    if prop.rooms is None or prop.rooms < criteria.min_rooms:
        return f"requires at least {_fmt_number(criteria.min_rooms)} rooms"
    return None


def _check_city(criteria: BuyerCriteria, prop: Property) -> Optional[str]:
    if criteria.target_cities and prop.city not in criteria.target_cities:
        return REASON_CITY_MISMATCH
    return None


def _has_feature(prop: Property, feature: RequiredFeature) -> bool:
    if feature is RequiredFeature.PARKING:
        return prop.has_parking
    return bool(getattr(prop, feature.value))


def _check_features(criteria: BuyerCriteria, prop: Property) -> Optional[str]:
    for feature in criteria.required_features:
        if not _has_feature(prop, feature):
            return FEATURE_FAILURE_REASONS[feature]
    return None


def _check_floor(criteria: BuyerCriteria, prop: Property) -> Optional[str]:
    # Sin dato de piso: falla el mínimo, pero NO el máximo
    if criteria.floor_min is not None:
        if prop.floor is None or prop.floor < criteria.floor_min:
            return f"floor below {criteria.floor_min}"
    if criteria.floor_max is not None:
        if prop.floor is not None and prop.floor > criteria.floor_max:
            return f"floor above {criteria.floor_max}"
    return None


def _check_neighborhood(criteria: BuyerCriteria, prop: Property) -> Optional[str]:
    # Lista vacía = wildcard: cualquier barrio de las ciudades permitidas pasa
    if len(criteria.target_neighborhoods) == 0:
        return None
    if not prop.neighborhood or prop.neighborhood not in criteria.target_neighborhoods:
        return REASON_NEIGHBORHOOD_MISMATCH
    return None


def evaluate(
    criteria: BuyerCriteria,
    prop: Property,
    budget_elasticity: float = DEFAULT_BUDGET_ELASTICITY,
) -> FilterOutcome:
    """
    Evalúa una propiedad contra los criterios hard del comprador.

    Args:
        criteria: Criterios del comprador
        prop: Propiedad candidata
        budget_elasticity: Margen sobre el presupuesto (0.2 = ±20%)

    Returns:
        FilterOutcome con passed=False y el motivo de la primera regla que falla
    """
    reason = (
        _check_budget(criteria, prop, budget_elasticity)
        or _check_rooms(criteria, prop)
        or _check_city(criteria, prop)
        or _check_features(criteria, prop)
        or _check_floor(criteria, prop)
        or _check_neighborhood(criteria, prop)
    )
    return FilterOutcome(property_id=prop.id, passed=reason is None, reason=reason)


def could_match(
    criteria: BuyerCriteria,
    prop: Property,
    budget_elasticity: float = DEFAULT_BUDGET_ELASTICITY,
) -> bool:
    """Pre-filtro barato (ciudad y presupuesto) para decidir a quién re-matchear."""
    return (
        _check_city(criteria, prop) is None
        and _check_budget(criteria, prop, budget_elasticity) is None
    )


def exclude_assigned(
    candidates: Iterable[Property], assigned_ids: Iterable[str]
) -> list[Property]:
    """Saca las propiedades ya asignadas al comprador, antes de filtrar."""
    assigned = set(assigned_ids)
    return [p for p in candidates if p.id not in assigned]


def apply_hard_filters(
    criteria: BuyerCriteria,
    candidates: Iterable[Property],
    budget_elasticity: float = DEFAULT_BUDGET_ELASTICITY,
) -> tuple[list[Property], list[FilterOutcome]]:
    """
    Corre el pipeline de filtros hard sobre todos los candidatos.

    Returns:
        (propiedades que pasan, outcomes de las que fallan)
    """
    passed: list[Property] = []
    failed: list[FilterOutcome] = []

    for prop in candidates:
        outcome = evaluate(criteria, prop, budget_elasticity)
        if outcome.passed:
            passed.append(prop)
        else:
            failed.append(outcome)

    logger.info(
        "Filtros hard aplicados",
        passed=len(passed),
        failed=len(failed),
    )
    return passed, failed
