"""Sync pipeline: Strava -> activity cache -> dashboard stats.

Reads the baseline, cached activities and watermark, pulls new activities
and lifetime totals from Strava, merges them into the cache, backfills
missing energy data for a bounded number of activities, then writes the
cache, the next watermark and sports-stats.json.

Usage:
    python sync/src/pipeline.py [--root DIR] [--detail-max N] [--dry-run]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from config import (
    get_baseline_year,
    get_data_paths,
    get_detail_max,
    get_initial_after_epoch,
    get_strava_credentials,
)
from stats import compute_sports_stats
from store import load_activities, load_baseline, load_state, save_activities, save_state, write_json
from strava_client import StravaClient
from strava_sync import (
    backfill_details,
    fetch_activities,
    merge_activities,
    minimize_fresh,
    next_watermark,
)

logger = logging.getLogger(__name__)


def _make_client() -> StravaClient:
    creds = get_strava_credentials()
    return StravaClient(
        client_id=creds["client_id"],
        client_secret=creds["client_secret"],
        refresh_token=creds["refresh_token"],
    )


def run_sync(root: Path | None = None, detail_max: int | None = None,
             dry_run: bool = False, client=None, now: datetime | None = None) -> dict:
    """Run one sync. Any fatal error propagates before anything is written."""
    paths = get_data_paths(root)
    detail_max = get_detail_max() if detail_max is None else max(0, detail_max)
    now = now or datetime.now(timezone.utc)

    baseline = load_baseline(paths["baseline"])
    state = load_state(paths["state"])
    cached = load_activities(paths["activities"])

    after_from_state = state["lastSyncEpoch"]
    after_epoch = after_from_state if after_from_state > 0 else get_initial_after_epoch()

    client = client or _make_client()
    _, athlete_id = client.refresh_access_token()
    athlete_stats = client.get_athlete_stats(athlete_id)

    logger.info("Fetching Strava activities after %d...", after_epoch)
    raw = fetch_activities(client, after_epoch)
    fresh = minimize_fresh(raw, cached)
    fresh_ids = {r.id for r in fresh if r.id}

    merged = merge_activities(cached, fresh)
    detail_fetched = backfill_details(client, merged, fresh_ids, detail_max)
    next_epoch = next_watermark(merged, after_from_state)

    stats = compute_sports_stats(
        baseline, merged, athlete_stats, now=now, baseline_year=get_baseline_year(),
    )

    if dry_run:
        logger.info("Dry run: nothing written.")
    else:
        save_activities(paths["activities"], merged)
        save_state(paths["state"], next_epoch, now=now)
        write_json(paths["stats"], stats)

    return {
        "fetched": len(raw),
        "cached_before": len(cached),
        "cached_after": len(merged),
        "detailFetched": detail_fetched,
        "athleteId": athlete_id,
        "hasAthleteStats": bool(athlete_stats),
        "nextAfterEpoch": next_epoch,
        "generatedAt": stats["generatedAt"],
    }


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sync Strava activities and rebuild dashboard stats")
    parser.add_argument("--root", type=Path, default=None,
                        help="Site root holding src/data (default: SYNC_DATA_ROOT or cwd)")
    parser.add_argument("--detail-max", type=int, default=None,
                        help="Max activity detail lookups this run (default: STRAVA_DETAIL_MAX or 30)")
    parser.add_argument("--dry-run", action="store_true", help="Sync and compute without writing files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        summary = run_sync(root=args.root, detail_max=args.detail_max, dry_run=args.dry_run)
    except Exception as e:
        print(f"!!! Strava sync failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
