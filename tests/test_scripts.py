"""Tests for the command line entry points."""

import json

import pytest

from brokermatch.errors import BuyerNotFoundError, RankingRateLimitedError
from brokermatch.scripts import run_matching, run_trigger


def test_run_matching_prints_payload(monkeypatch, capsys):
    async def fake_run(buyer_id, save_results):
        return {"buyer_name": "Dana", "matches": [], "total_filtered": 0, "failed_count": 3, "filters_applied": {}}

    monkeypatch.setattr(run_matching, "run_matching", fake_run)

    run_matching.main(["--buyer-id", "buyer-1"])

    out = capsys.readouterr().out
    assert json.loads(out)["failed_count"] == 3


@pytest.mark.parametrize(
    "error,code",
    [(RankingRateLimitedError("429"), 75), (BuyerNotFoundError("nobody"), 1)],
)
def test_run_matching_exit_codes(monkeypatch, error, code):
    async def fake_run(buyer_id, save_results):
        raise error

    monkeypatch.setattr(run_matching, "run_matching", fake_run)

    with pytest.raises(SystemExit) as exc_info:
        run_matching.main(["--buyer-id", "buyer-1", "--save"])
    assert exc_info.value.code == code


def test_run_trigger_requires_an_event():
    with pytest.raises(SystemExit) as exc_info:
        run_trigger.main(["--type", "buyer_filter_change"])
    assert exc_info.value.code == 2


def test_run_trigger_reads_event_file(monkeypatch, tmp_path):
    seen = {}

    class FakeTrigger:
        async def handle_event(self, event):
            seen.update(event)
            return {"buyers_triggered": 1, "buyers_matched": 1, "notifications_created": 0, "errors": 0}

    monkeypatch.setattr(run_trigger, "MatchTrigger", FakeTrigger)
    event_file = tmp_path / "event.json"
    event_file.write_text(json.dumps({"type": "property_change", "record": {"id": "prop-a"}}))

    with pytest.raises(SystemExit) as exc_info:
        run_trigger.main(["--event-file", str(event_file)])

    assert exc_info.value.code == 0
    assert seen["record"] == {"id": "prop-a"}


@pytest.mark.parametrize(
    "error,code",
    [(RankingRateLimitedError("429"), 75), (BuyerNotFoundError("nobody"), 1)],
)
def test_run_trigger_exit_codes_follow_retryable(monkeypatch, error, code):
    class FailingTrigger:
        async def handle_event(self, event):
            raise error

    monkeypatch.setattr(run_trigger, "MatchTrigger", FailingTrigger)

    with pytest.raises(SystemExit) as exc_info:
        run_trigger.main(["--type", "buyer_filter_change", "--record-id", "buyer-1"])
    assert exc_info.value.code == code


def test_run_trigger_fan_out_with_retryable_failures_exits_75(monkeypatch):
    class PartialTrigger:
        async def handle_event(self, event):
            return {
                "buyers_triggered": 3,
                "buyers_matched": 2,
                "notifications_created": 0,
                "errors": 1,
                "retryable_errors": 1,
                "errors_by_type": {"RankingRateLimitedError": 1},
            }

    monkeypatch.setattr(run_trigger, "MatchTrigger", PartialTrigger)

    with pytest.raises(SystemExit) as exc_info:
        run_trigger.main(["--type", "property_change", "--record-id", "prop-a"])
    assert exc_info.value.code == 75
