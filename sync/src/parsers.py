"""Project raw Strava activity JSON into the minimized records kept in the cache."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone

RUN_SPORT_TYPES = frozenset({"Run", "TrailRun", "VirtualRun", "Treadmill"})
RIDE_SPORT_TYPES = frozenset({"Ride", "VirtualRide", "EBikeRide", "GravelRide"})


@dataclass
class ActivityRecord:
    """One cached activity.

    Every metric is optional and None when Strava did not report it.
    ``detail_attempted`` records whether a detail lookup was ever tried for
    this activity; once True it stays True.
    """

    id: int | None = None
    sport_type: str | None = None
    name: str | None = None
    start_date: str | None = None  # UTC ISO 8601
    start_date_local: str | None = None
    distance_m: float | None = None
    moving_time_s: float | None = None
    elapsed_time_s: float | None = None
    total_elevation_gain_m: float | None = None
    calories_kcal: float | None = None
    kilojoules_kj: float | None = None
    average_speed_mps: float | None = None
    max_speed_mps: float | None = None
    average_temp_c: float | None = None
    average_watts: float | None = None
    has_heartrate: bool | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    device_name: str | None = None
    trainer: bool | None = None
    commute: bool | None = None
    detail_attempted: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> ActivityRecord:
        """Load a cached record, ignoring keys this version does not know."""
        known = {f.name for f in fields(cls)}
        record = cls(**{k: v for k, v in data.items() if k in known})
        record.detail_attempted = bool(record.detail_attempted)
        return record

    def to_dict(self) -> dict:
        return asdict(self)

    def update_from(self, other: ActivityRecord) -> None:
        """Overwrite every field in place with the values of ``other``."""
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

    @property
    def has_energy(self) -> bool:
        return self.calories_kcal is not None or self.kilojoules_kj is not None

    @property
    def is_run(self) -> bool:
        return (self.sport_type or "") in RUN_SPORT_TYPES

    @property
    def is_ride(self) -> bool:
        return (self.sport_type or "") in RIDE_SPORT_TYPES

    @property
    def start_epoch(self) -> int:
        """UTC start as whole epoch seconds; 0 when missing or unparsable."""
        parsed = parse_timestamp(self.start_date)
        return int(parsed.timestamp()) if parsed else 0

    @property
    def local_start(self) -> datetime | None:
        """Wall-clock start in the activity's own time zone."""
        return parse_timestamp(self.start_date_local) or parse_timestamp(self.start_date)


def parse_timestamp(ts: str | None) -> datetime | None:
    """Parse a Strava ISO 8601 timestamp. Naive values are read as UTC."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(str(ts).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def minimize_activity(raw: dict, detail_attempted: bool | None = None) -> ActivityRecord:
    """Project a raw summary or detail object into an ActivityRecord.

    ``detail_attempted`` is the caller's prior flag for this activity. When
    omitted, the raw object's own flag is used (cached records carry one),
    else False.
    """
    if detail_attempted is None:
        detail_attempted = bool(raw.get("detail_attempted", False))
    return ActivityRecord(
        id=raw.get("id"),
        sport_type=raw.get("sport_type") or raw.get("type"),
        name=raw.get("name"),
        start_date=raw.get("start_date"),
        start_date_local=raw.get("start_date_local"),
        distance_m=raw.get("distance"),
        moving_time_s=raw.get("moving_time"),
        elapsed_time_s=raw.get("elapsed_time"),
        total_elevation_gain_m=raw.get("total_elevation_gain"),
        calories_kcal=raw.get("calories"),
        kilojoules_kj=raw.get("kilojoules"),
        average_speed_mps=raw.get("average_speed"),
        max_speed_mps=raw.get("max_speed"),
        average_temp_c=raw.get("average_temp"),
        average_watts=raw.get("average_watts"),
        has_heartrate=raw.get("has_heartrate"),
        average_heartrate=raw.get("average_heartrate"),
        max_heartrate=raw.get("max_heartrate"),
        device_name=raw.get("device_name"),
        trainer=raw.get("trainer"),
        commute=raw.get("commute"),
        detail_attempted=detail_attempted,
    )
