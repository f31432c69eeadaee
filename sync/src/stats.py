"""Compute the dashboard statistics document.

Three inputs feed every figure:

- the curated baseline (running history that predates Strava, plus
  hand-maintained personal records),
- Strava's all-time athlete totals, preferred over local sums whenever a
  field is reported because the cache only covers the sync window,
- the cached activity records.

Running totals add the baseline on top of Strava; cycling never does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from config import FALLBACK_BASELINE_YEAR
from formatting import (
    format_date_dot,
    format_min_sec,
    format_pace,
    iso_utc,
    parse_baseline_time,
    parse_pace_text,
    to_fixed_trim,
    to_number,
)
from parsers import ActivityRecord

logger = logging.getLogger(__name__)

KJ_TO_KCAL = 0.239006
MPS_TO_KMH = 3.6

# key -> (nominal km, tolerance km)
BEST_EFFORT_WINDOWS = {
    "best5k": (5.0, 0.08),
    "best10k": (10.0, 0.12),
}

LABELS = {
    "run_total_distance": "总跑量({since})",
    "run_total_time": "总时长",
    "run_farthest": "最长跑步距离",
    "best5k": "5公里 PB",
    "best10k": "10公里 PB",
    "half_marathon": "半马 PB",
    "full_marathon": "全马 PB",
    "ride_total_distance": "总里程",
    "ride_total_time": "总时长",
    "ride_total_count": "累计次数",
    "ride_farthest": "最长骑行距离",
    "ride_total_calories": "总消耗",
}


@dataclass
class Effort:
    """A local activity picked as a personal-record candidate."""

    record: ActivityRecord
    km: float
    time_s: float

    @property
    def pace_s_per_km(self) -> float:
        return self.time_s / max(self.km, 0.001)

    @property
    def date_text(self) -> str | None:
        return format_date_dot(self.record.local_start)


def _km(record: ActivityRecord) -> float:
    return to_number(record.distance_m) / 1000


def _moving_s(record: ActivityRecord) -> float:
    return to_number(record.moving_time_s)


def _card(label, value, unit, subtext):
    return {"label": label, "value": value, "unit": unit, "subtext": subtext}


def _dated(text, date_text):
    """Join as "text @date", dropping whichever part is missing."""
    if not date_text:
        return text or None
    return f"{text} @{date_text}" if text else f"@{date_text}"


def _reported(totals: dict | None, field: str) -> float | None:
    """A lifetime-totals field, or None if Strava did not report it."""
    if not totals or totals.get(field) is None:
        return None
    return to_number(totals[field])


def ride_calories(rides: list[ActivityRecord]) -> float:
    """Sum of kcal over rides: reported calories, else kilojoules converted, else 0."""
    total = 0.0
    for a in rides:
        if a.calories_kcal is not None:
            total += to_number(a.calories_kcal)
        elif a.kilojoules_kj is not None:
            total += to_number(a.kilojoules_kj) * KJ_TO_KCAL
    return total


def farthest(records: list[ActivityRecord]) -> Effort | None:
    """The longest activity by distance; the first one wins ties."""
    best = None
    for a in records:
        km = _km(a)
        if km > (best.km if best else 0):
            best = Effort(a, km, _moving_s(a))
    return best


def best_effort(runs: list[ActivityRecord], target_km: float, tolerance_km: float) -> Effort | None:
    """Fastest run whose distance is within ``tolerance_km`` of ``target_km``."""
    best = None
    for a in runs:
        km = _km(a)
        if abs(km - target_km) > tolerance_km:
            continue
        t = _moving_s(a)
        if t <= 0:
            continue
        if best is None or t < best.time_s:
            best = Effort(a, km, t)
    return best


def resolve_baseline_year(baseline_running: dict, override: int | None = None) -> int:
    """Year that receives the baseline in the running yearly rollup."""
    year = baseline_running.get("year")
    if year:
        try:
            return int(year)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer baseline running.year=%r", year)
    if override:
        return override
    logger.warning(
        "Baseline has no running.year and STATS_BASELINE_YEAR is unset; "
        "folding baseline into %d", FALLBACK_BASELINE_YEAR,
    )
    return FALLBACK_BASELINE_YEAR


def group_monthly(records: list[ActivityRecord]) -> list[dict]:
    """Per-month distance, count and moving hours, newest month first."""
    months: dict[str, dict] = {}
    for a in records:
        start = a.local_start
        if start is None:
            continue
        key = f"{start.year}-{start.month:02d}"
        bucket = months.setdefault(key, {"distance_km": 0.0, "count": 0, "hours": 0.0})
        bucket["distance_km"] += _km(a)
        bucket["hours"] += _moving_s(a) / 3600
        bucket["count"] += 1

    return [
        {
            "month": key,
            "distanceKm": to_fixed_trim(months[key]["distance_km"], 2),
            "count": months[key]["count"],
            "movingTimeHours": to_fixed_trim(months[key]["hours"], 2),
        }
        for key in sorted(months, reverse=True)
    ]


def group_yearly(records: list[ActivityRecord], baseline_km: float = 0.0,
                 baseline_hours: float = 0.0, baseline_year: int | None = None) -> dict:
    """Per-year distance, hours and count, newest year first.

    When ``baseline_year`` is given the baseline distance and hours are added
    to that year; the baseline has no activity count.
    """
    years: dict[str, dict] = {}

    def bucket(y: str) -> dict:
        return years.setdefault(y, {"distance": 0.0, "time": 0.0, "count": 0})

    for a in records:
        start = a.local_start
        if start is None:
            continue
        b = bucket(str(start.year))
        b["distance"] += _km(a)
        b["time"] += _moving_s(a) / 3600
        b["count"] += 1

    if baseline_year is not None:
        b = bucket(str(baseline_year))
        b["distance"] += baseline_km
        b["time"] += baseline_hours

    return {
        y: {
            "distance": to_fixed_trim(years[y]["distance"], 2),
            "time": to_fixed_trim(years[y]["time"], 1),
            "count": years[y]["count"],
        }
        for y in sorted(years, reverse=True)
    }


def _farthest_run_card(runs, baseline_best: dict):
    recorded = baseline_best.get("farthest")
    recorded_km = to_number((recorded or {}).get("distanceKm"))

    value = to_fixed_trim(recorded_km, 1)
    subtext = _dated(recorded.get("paceText"), recorded.get("dateText")) if recorded else None

    local = farthest(runs)
    # Equal distance keeps the curated entry.
    if local and local.km > recorded_km:
        value = to_fixed_trim(local.km, 1 if local.km >= 10 else 2)
        pace = format_pace(local.pace_s_per_km)
        subtext = _dated(pace, local.date_text)
    return _card(LABELS["run_farthest"], value, "km", subtext)


def _best_effort_card(runs, key: str, baseline_best: dict):
    target_km, tolerance_km = BEST_EFFORT_WINDOWS[key]
    recorded = baseline_best.get(key) or {}
    recorded_s = parse_baseline_time(recorded.get("timeText"))

    candidate = best_effort(runs, target_km, tolerance_km)
    if candidate and recorded_s is not None and candidate.time_s < recorded_s:
        value = format_min_sec(candidate.time_s)
        subtext = _dated(format_pace(candidate.pace_s_per_km), candidate.date_text)
    else:
        value = recorded.get("timeText") or ""
        subtext = recorded.get("paceText") or ""
    label = recorded.get("label") or LABELS[key]
    return _card(label, value, recorded.get("unit") or "min", subtext)


def _farthest_ride_card(rides):
    best = farthest(rides)
    km = best.km if best else 0.0
    subtext = None
    if best and best.date_text:
        speed_mps = to_number(best.record.average_speed_mps)
        if speed_mps <= 0 and best.time_s > 0:
            speed_mps = to_number(best.record.distance_m) / best.time_s
        if speed_mps > 0:
            subtext = f"~{to_fixed_trim(speed_mps * MPS_TO_KMH, 1)} km/h @{best.date_text}"
        else:
            subtext = f"@{best.date_text}"
    return _card(LABELS["ride_farthest"], to_fixed_trim(km, 1 if km >= 100 else 2), "km", subtext)


def compute_sports_stats(baseline: dict, activities: list[ActivityRecord],
                         athlete_stats: dict | None, now: datetime | None = None,
                         baseline_year: int | None = None) -> dict:
    """Build the stats document written to sports-stats.json.

    ``baseline_year`` is the configured fallback year for the running
    baseline; the baseline's own ``running.year`` takes precedence.
    """
    now = now or datetime.now(timezone.utc)
    runs = [a for a in activities if a.is_run]
    rides = [a for a in activities if a.is_ride]

    athlete_stats = athlete_stats or {}
    all_run = athlete_stats.get("all_run_totals")
    all_ride = athlete_stats.get("all_ride_totals")

    baseline_running = baseline.get("running") or {}
    baseline_best = baseline_running.get("best") or {}
    baseline_km = to_number(baseline_running.get("totalDistanceKm"))
    baseline_hours = baseline_km * parse_pace_text(baseline_running.get("avgPaceText")) / 3600

    # --- running totals: baseline + (lifetime totals, else local sums)
    run_m = _reported(all_run, "distance")
    run_km = baseline_km + (run_m / 1000 if run_m is not None else sum(_km(a) for a in runs))
    run_s = _reported(all_run, "moving_time")
    run_hours = baseline_hours + (
        run_s / 3600 if run_s is not None else sum(_moving_s(a) for a in runs) / 3600
    )

    # --- cycling totals: lifetime totals, else local sums; never the baseline
    ride_m = _reported(all_ride, "distance")
    ride_km = ride_m / 1000 if ride_m is not None else sum(_km(a) for a in rides)
    ride_s = _reported(all_ride, "moving_time")
    ride_hours = ride_s / 3600 if ride_s is not None else sum(_moving_s(a) for a in rides) / 3600
    ride_n = _reported(all_ride, "count")
    ride_count = int(ride_n) if ride_n is not None else len(rides)
    ride_kcal = ride_calories(rides)

    if baseline_running:
        run_years = group_yearly(
            runs, baseline_km, baseline_hours,
            resolve_baseline_year(baseline_running, baseline_year),
        )
    else:
        run_years = group_yearly(runs)

    since = baseline_running.get("sinceLabel") or "累计"
    avg_km_per_ride = ride_km / ride_count if ride_count > 0 else 0

    return {
        "generatedAt": iso_utc(now),
        "running": {
            "years": run_years,
            "cards": {
                "totalDistance": _card(
                    LABELS["run_total_distance"].format(since=since),
                    to_fixed_trim(run_km, 2), "km",
                    baseline_running.get("avgPaceText") or None,
                ),
                "totalTime": _card(LABELS["run_total_time"], to_fixed_trim(run_hours, 1), "h", "在路上的时间"),
                "farthest": _farthest_run_card(runs, baseline_best),
                "best5k": _best_effort_card(runs, "best5k", baseline_best),
                "best10k": _best_effort_card(runs, "best10k", baseline_best),
                "halfMarathon": _card(LABELS["half_marathon"], "--", "", "暂无记录"),
                "fullMarathon": _card(LABELS["full_marathon"], "--", "", "暂无记录"),
            },
            "monthly": group_monthly(runs),
        },
        "cycling": {
            "years": group_yearly(rides),
            "cards": {
                "totalDistance": _card(LABELS["ride_total_distance"], to_fixed_trim(ride_km, 2), "km", "历史累计"),
                "totalTime": _card(LABELS["ride_total_time"], to_fixed_trim(ride_hours, 2), "h", "在路上的时间"),
                "totalCount": _card(
                    LABELS["ride_total_count"], str(ride_count), "次",
                    f"~{to_fixed_trim(avg_km_per_ride, 1)} km/次" if ride_count > 0 else None,
                ),
                "farthest": _farthest_ride_card(rides),
                "totalCalories": _card(LABELS["ride_total_calories"], to_fixed_trim(ride_kcal, 0), "kcal", "骑行活动累计"),
            },
            "monthly": group_monthly(rides),
        },
    }
