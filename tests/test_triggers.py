"""Tests for MatchTrigger: event dispatch, fan-out and per-buyer serialization."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from brokermatch.errors import (
    BuyerNotFoundError,
    InvalidRequestError,
    RankingQuotaExceededError,
    RankingRateLimitedError,
    RankingUnavailableError,
)
from brokermatch.matching.engine import MatchingEngine
from brokermatch.matching.notifier import NotificationDispatcher
from brokermatch.matching.reconciler import MatchReconciler
from brokermatch.matching.triggers import (
    EVENT_BUYER_FILTER_CHANGE,
    EVENT_PROPERTY_CHANGE,
    MatchTrigger,
)
from brokermatch.models import MatchingResult, Property

from tests.conftest import StaticRanker, make_buyer_row, make_property_row


@pytest.fixture
def engine(repos, settings):
    return MatchingEngine(
        ranker=StaticRanker({"prop-a": 85, "prop-b": 72}),
        buyer_repo=repos["buyers"],
        property_repo=repos["properties"],
        assignment_repo=repos["assignments"],
        reconciler=MatchReconciler(match_repo=repos["matches"]),
        dispatcher=NotificationDispatcher(
            buyer_repo=repos["buyers"],
            notification_repo=repos["notifications"],
            threshold=70,
        ),
        settings=settings,
    )


@pytest.fixture
def populated_db(fake_db):
    fake_db.tables["buyers"] = [
        make_buyer_row("tlv-buyer", target_cities=["Tel Aviv"], budget_max=1_500_000),
        make_buyer_row("haifa-buyer", target_cities=["Haifa"]),
        make_buyer_row("cheap-buyer", target_cities=["Tel Aviv"], budget_max=900_000),
        make_buyer_row("no-taste", target_cities=["Tel Aviv"], global_liked_profile=None),
        make_buyer_row("broken", floor_min=9, floor_max=2),
    ]
    fake_db.tables["properties"] = [make_property_row("prop-a", city="Tel Aviv", price=1_400_000)]
    fake_db.tables["buyer_agents"] = [{"buyer_id": "tlv-buyer", "agent_id": "agent-1"}]
    return fake_db


def _result(buyer_id, notifications=0):
    return MatchingResult(buyer_id=buyer_id, buyer_name="x", notifications_created=notifications)


async def test_buyer_filter_change_persists(engine, populated_db):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    stats = await trigger.handle_event(
        {"type": EVENT_BUYER_FILTER_CHANGE, "record": {"id": "tlv-buyer"}}
    )

    assert stats == {
        "buyers_triggered": 1,
        "buyers_matched": 1,
        "notifications_created": 1,
        "errors": 0,
        "retryable_errors": 0,
        "errors_by_type": {},
    }
    assert [r["property_id"] for r in populated_db.rows("matches")] == ["prop-a"]


def test_buyers_for_property_prefilters_on_city_and_budget(engine, populated_db):
    trigger = MatchTrigger(engine=engine, concurrency=2)
    prop = Property.model_validate(make_property_row("prop-a", city="Tel Aviv", price=1_400_000))

    # cheap-buyer: 1,400,000 > 900,000 * 1.2; no-taste and broken are skipped
    assert trigger.buyers_for_property(prop) == ["tlv-buyer"]


async def test_property_change_rematches_candidate_buyers(engine, populated_db):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    stats = await trigger.handle_event(
        {"type": EVENT_PROPERTY_CHANGE, "record": make_property_row("prop-a", city="Tel Aviv")}
    )

    assert stats["buyers_triggered"] == 1
    assert stats["buyers_matched"] == 1
    assert {r["buyer_id"] for r in populated_db.rows("matches")} == {"tlv-buyer"}


async def test_property_change_with_only_an_id_loads_the_row(engine, populated_db):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    stats = await trigger.handle_event({"type": EVENT_PROPERTY_CHANGE, "record": {"id": "prop-a"}})

    assert stats["buyers_triggered"] == 1


async def test_property_change_for_unknown_id(engine, populated_db):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    with pytest.raises(InvalidRequestError):
        await trigger.handle_event({"type": EVENT_PROPERTY_CHANGE, "record": {"id": "ghost"}})


async def test_invalid_property_record_is_rejected(engine):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    with pytest.raises(InvalidRequestError):
        await trigger.on_property_change({"id": "prop-a", "price": "lots"})


@pytest.mark.parametrize(
    "event",
    [
        {"type": "buyer_deleted", "record": {"id": "b"}},
        {"type": EVENT_BUYER_FILTER_CHANGE, "record": {}},
        {"type": EVENT_PROPERTY_CHANGE},
        {},
    ],
)
async def test_malformed_events_raise(engine, event):
    trigger = MatchTrigger(engine=engine, concurrency=2)

    with pytest.raises(InvalidRequestError):
        await trigger.handle_event(event)


async def test_one_buyer_failing_does_not_stop_the_rest():
    async def match_buyer(buyer_id, save_results=False):
        if buyer_id == "b2":
            raise RankingUnavailableError("oracle down")
        if buyer_id == "b3":
            raise BuyerNotFoundError(buyer_id)
        return _result(buyer_id, notifications=2)

    engine = SimpleNamespace(match_buyer=AsyncMock(side_effect=match_buyer))
    trigger = MatchTrigger(engine=engine, concurrency=2)

    stats = await trigger.run_many(["b1", "b2", "b3", "b4", "b1"])

    assert stats == {
        "buyers_triggered": 4,
        "buyers_matched": 2,
        "notifications_created": 4,
        "errors": 2,
        "retryable_errors": 1,
        "errors_by_type": {"RankingUnavailableError": 1, "BuyerNotFoundError": 1},
    }
    for call in engine.match_buyer.await_args_list:
        assert call.kwargs == {"save_results": True}


async def test_runs_for_the_same_buyer_are_serialized():
    active = {"b1": 0, "b2": 0}
    peak = {"b1": 0, "b2": 0}
    overlap = {"seen": False}

    async def match_buyer(buyer_id, save_results=False):
        active[buyer_id] += 1
        peak[buyer_id] = max(peak[buyer_id], active[buyer_id])
        if active["b1"] and active["b2"]:
            overlap["seen"] = True
        await asyncio.sleep(0.01)
        active[buyer_id] -= 1
        return _result(buyer_id)

    engine = MagicMock()
    engine.match_buyer = match_buyer
    trigger = MatchTrigger(engine=engine, concurrency=4)

    await asyncio.gather(
        trigger.on_buyer_criteria_change("b1"),
        trigger.on_buyer_criteria_change("b1"),
        trigger.on_buyer_criteria_change("b2"),
        trigger.on_buyer_criteria_change("b1"),
    )

    assert peak == {"b1": 1, "b2": 1}
    # Different buyers still run concurrently
    assert overlap["seen"] is True
    assert trigger._locks == {}


@pytest.mark.parametrize(
    "error",
    [
        RankingRateLimitedError("429"),
        RankingQuotaExceededError("402"),
        RankingUnavailableError("oracle down"),
        BuyerNotFoundError("b1"),
    ],
)
async def test_buyer_filter_change_surfaces_the_error(error):
    engine = SimpleNamespace(match_buyer=AsyncMock(side_effect=error))
    trigger = MatchTrigger(engine=engine, concurrency=2)

    with pytest.raises(type(error)) as exc_info:
        await trigger.handle_event({"type": EVENT_BUYER_FILTER_CHANGE, "record": {"id": "b1"}})

    assert exc_info.value.retryable is error.retryable
    assert trigger._locks == {}


async def test_unexpected_error_in_one_buyer_does_not_abort_the_fan_out():
    async def match_buyer(buyer_id, save_results=False):
        if buyer_id == "b1":
            raise ValueError("GROQ_API_KEY no configurada")
        return _result(buyer_id, notifications=1)

    engine = SimpleNamespace(match_buyer=AsyncMock(side_effect=match_buyer))
    trigger = MatchTrigger(engine=engine, concurrency=1)

    stats = await trigger.run_many(["b1", "b2", "b3"])

    assert stats["buyers_matched"] == 2
    assert stats["errors"] == 1
    assert stats["retryable_errors"] == 0
    assert stats["errors_by_type"] == {"ValueError": 1}
    assert engine.match_buyer.await_count == 3


async def test_buyer_lock_is_released_after_the_last_run():
    release = asyncio.Event()

    async def match_buyer(buyer_id, save_results=False):
        await release.wait()
        return _result(buyer_id)

    engine = SimpleNamespace(match_buyer=match_buyer)
    trigger = MatchTrigger(engine=engine, concurrency=2)

    first = asyncio.create_task(trigger.run_for_buyer("b1"))
    second = asyncio.create_task(trigger.run_for_buyer("b1"))
    await asyncio.sleep(0)
    # One run holds the lock, the other waits on the same one
    assert list(trigger._locks) == ["b1"]

    release.set()
    await asyncio.gather(first, second)

    assert trigger._locks == {}
