"""Test fetching, merging, detail backfill and watermark tracking."""

import logging
from unittest.mock import MagicMock, call

import pytest

from errors import RemoteFetchError
from parsers import ActivityRecord
from strava_sync import (
    MAX_PAGES,
    PAGE_SIZE,
    backfill_details,
    fetch_activities,
    merge_activities,
    minimize_fresh,
    next_watermark,
)


def _rec(id, start="2024-01-01T08:00:00Z", sport="Run", **kwargs):
    return ActivityRecord(id=id, sport_type=sport, start_date=start, start_date_local=start, **kwargs)


# --- fetch ---

def test_fetch_paginates_until_partial_page():
    client = MagicMock()
    client.get_activities.side_effect = [
        [{"id": i} for i in range(PAGE_SIZE)],
        [{"id": PAGE_SIZE}],
    ]
    items = fetch_activities(client, after_epoch=1700000000)
    assert len(items) == PAGE_SIZE + 1
    assert client.get_activities.call_args_list == [
        call(after=1700000000, page=1, per_page=PAGE_SIZE),
        call(after=1700000000, page=2, per_page=PAGE_SIZE),
    ]


def test_fetch_stops_at_page_ceiling():
    client = MagicMock()
    client.get_activities.return_value = [{"id": 1}, {"id": 2}]
    items = fetch_activities(client, page_size=2, max_pages=4)
    assert client.get_activities.call_count == 4
    assert len(items) == 8


def test_fetch_default_ceiling():
    client = MagicMock()
    client.get_activities.return_value = [{"id": 1}]
    fetch_activities(client, page_size=1)
    assert client.get_activities.call_count == MAX_PAGES


def test_fetch_empty_first_page():
    client = MagicMock()
    client.get_activities.return_value = []
    assert fetch_activities(client) == []
    assert client.get_activities.call_count == 1


def test_fetch_error_propagates():
    client = MagicMock()
    client.get_activities.side_effect = RemoteFetchError("activities", 500, "boom")
    with pytest.raises(RemoteFetchError):
        fetch_activities(client)


# --- merge ---

def test_minimize_fresh_carries_detail_attempted():
    cached = [_rec(1, detail_attempted=True), _rec(2)]
    fresh = minimize_fresh([{"id": 1, "type": "Run"}, {"id": 2}, {"id": 3}, "junk"], cached)
    assert [r.id for r in fresh] == [1, 2, 3]
    assert [r.detail_attempted for r in fresh] == [True, False, False]


def test_minimize_fresh_keeps_looked_up_energy():
    cached = [_rec(1, sport="Ride", calories_kcal=650.0, kilojoules_kj=720.0, detail_attempted=True)]
    fresh = minimize_fresh([{"id": 1, "type": "Ride", "name": "renamed"}], cached)
    assert fresh[0].name == "renamed"
    assert fresh[0].calories_kcal == 650.0
    assert fresh[0].kilojoules_kj == 720.0


def test_minimize_fresh_reported_energy_wins():
    cached = [_rec(1, sport="Ride", calories_kcal=650.0, kilojoules_kj=720.0, detail_attempted=True)]
    fresh = minimize_fresh([{"id": 1, "type": "Ride", "kilojoules": 800.0}], cached)
    assert fresh[0].kilojoules_kj == 800.0
    assert fresh[0].calories_kcal == 650.0


def test_minimize_fresh_ignores_energy_of_unattempted_records():
    cached = [_rec(1, sport="Ride", calories_kcal=650.0)]
    fresh = minimize_fresh([{"id": 1, "type": "Ride"}], cached)
    assert fresh[0].calories_kcal is None


def test_merge_fresh_wins():
    cached = [_rec(1, name="old")]
    fresh = [_rec(1, name="new")]
    merged = merge_activities(cached, fresh)
    assert len(merged) == 1
    assert merged[0].name == "new"


def test_merge_sorted_newest_first():
    cached = [_rec(1, "2024-01-01T08:00:00Z"), _rec(2, "2024-03-01T08:00:00Z")]
    fresh = [_rec(3, "2024-02-01T08:00:00Z")]
    merged = merge_activities(cached, fresh)
    assert [r.id for r in merged] == [2, 3, 1]


def test_merge_ids_unique():
    cached = [_rec(i) for i in range(5)] + [_rec(2, name="dup")]
    fresh = [_rec(i) for i in range(3, 8)]
    merged = merge_activities(cached, fresh)
    ids = [r.id for r in merged]
    assert len(ids) == len(set(ids))
    assert set(ids) == set(range(1, 8))  # id 0 is not a usable identifier


def test_merge_drops_records_without_id():
    merged = merge_activities([_rec(None), _rec(1)], [_rec("")])
    assert [r.id for r in merged] == [1]


def test_merge_is_idempotent():
    cached = [_rec(1, "2024-01-01T08:00:00Z"), _rec(2, "2024-01-05T08:00:00Z")]
    fresh = [_rec(2, "2024-01-05T08:00:00Z", name="edited"), _rec(3, "2024-01-09T08:00:00Z")]
    once = merge_activities(cached, fresh)
    twice = merge_activities(once, fresh)
    assert twice == once


def test_merge_empty_fresh_only_sorts():
    cached = [_rec(1, "2024-01-01T08:00:00Z"), _rec(2, "2024-02-01T08:00:00Z")]
    merged = merge_activities(cached, [])
    assert [r.id for r in merged] == [2, 1]
    assert merge_activities(merged, merged) == merged


def test_merge_missing_timestamp_sorts_last():
    merged = merge_activities([_rec(1, None), _rec(2, "2024-01-01T08:00:00Z")], [])
    assert [r.id for r in merged] == [2, 1]


# --- detail backfill ---

def test_backfill_patches_energy_and_marks_attempted():
    merged = [_rec(1, sport="Ride")]
    client = MagicMock()
    client.get_activity.return_value = {
        "id": 1, "sport_type": "Ride", "start_date": "2024-01-01T08:00:00Z", "calories": 640.0,
    }
    fetched = backfill_details(client, merged, {1}, detail_max=30)
    assert fetched == 1
    assert merged[0].calories_kcal == 640.0
    assert merged[0].detail_attempted is True
    client.get_activity.assert_called_once_with(1)


def test_backfill_respects_budget_newest_first():
    merged = [_rec(i, f"2024-01-{10 - i:02d}T08:00:00Z") for i in range(1, 6)]
    client = MagicMock()
    client.get_activity.side_effect = lambda aid: {"id": aid, "calories": 100}
    fetched = backfill_details(client, merged, {1, 2, 3, 4, 5}, detail_max=2)
    assert fetched == 2
    assert [c.args[0] for c in client.get_activity.call_args_list] == [1, 2]
    assert [r.detail_attempted for r in merged] == [True, True, False, False, False]


def test_backfill_failures_use_budget():
    merged = [_rec(1), _rec(2), _rec(3)]
    client = MagicMock()
    client.get_activity.side_effect = RemoteFetchError("activity detail", 500, "err")
    fetched = backfill_details(client, merged, {1, 2, 3}, detail_max=2)
    assert fetched == 0
    assert client.get_activity.call_count == 2


def test_backfill_failure_is_swallowed_and_marked(caplog):
    merged = [_rec(1)]
    client = MagicMock()
    client.get_activity.side_effect = RuntimeError("socket closed")
    with caplog.at_level(logging.WARNING):
        fetched = backfill_details(client, merged, {1}, detail_max=30)
    assert fetched == 0
    assert merged[0].detail_attempted is True
    assert "socket closed" in caplog.text


def test_backfill_skips_cached_and_attempted():
    merged = [_rec(1), _rec(2, detail_attempted=True), _rec(3)]
    client = MagicMock()
    client.get_activity.return_value = {"id": 3, "calories": 10}
    backfill_details(client, merged, {2, 3}, detail_max=30)
    client.get_activity.assert_called_once_with(3)
    assert merged[0].detail_attempted is False


def test_backfill_never_repeats_an_activity():
    merged = [_rec(1)]
    client = MagicMock()
    client.get_activity.side_effect = RuntimeError("down")
    backfill_details(client, merged, {1}, detail_max=30)
    backfill_details(client, merged, {1}, detail_max=30)
    assert client.get_activity.call_count == 1
    assert merged[0].detail_attempted is True


def test_backfill_marks_records_with_energy_without_lookup():
    merged = [_rec(1, kilojoules_kj=250.0), _rec(2, calories_kcal=300.0)]
    client = MagicMock()
    fetched = backfill_details(client, merged, {1, 2}, detail_max=30)
    assert fetched == 0
    client.get_activity.assert_not_called()
    assert all(r.detail_attempted for r in merged)


def test_backfill_disabled_with_zero_budget():
    merged = [_rec(1)]
    client = MagicMock()
    assert backfill_details(client, merged, {1}, detail_max=0) == 0
    client.get_activity.assert_not_called()
    assert merged[0].detail_attempted is False


def test_backfill_keeps_id_when_detail_lacks_one():
    merged = [_rec(7)]
    client = MagicMock()
    client.get_activity.return_value = {"calories": 12}
    backfill_details(client, merged, {7}, detail_max=1)
    assert merged[0].id == 7


# --- watermark ---

def test_watermark_newest_minus_margin():
    merged = [_rec(1, "2024-01-01T00:01:00Z"), _rec(2, "2023-12-01T00:00:00Z")]
    newest = merged[0].start_epoch
    assert next_watermark(merged, 5) == newest - 60
    assert next_watermark(merged, 5) <= newest


def test_watermark_unchanged_without_records():
    assert next_watermark([], 1700000000) == 1700000000


def test_watermark_unchanged_without_timestamp():
    assert next_watermark([_rec(1, None)], 42) == 42


def test_watermark_never_negative():
    assert next_watermark([_rec(1, "1970-01-01T00:00:30Z")], 0) == 0
