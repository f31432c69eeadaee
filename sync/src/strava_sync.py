"""Pull new Strava activities and reconcile them with the local cache."""

import logging
from collections import OrderedDict

from parsers import ActivityRecord, minimize_activity

logger = logging.getLogger(__name__)

PAGE_SIZE = 200
# Hard stop against runaway pagination, not a real history limit.
MAX_PAGES = 20
# Seconds subtracted from the newest activity when advancing the watermark.
WATERMARK_MARGIN_S = 60


def fetch_activities(client, after_epoch=0, page_size=PAGE_SIZE, max_pages=MAX_PAGES):
    """Fetch activity summaries newer than ``after_epoch`` (0 = no lower bound).

    Paginates until a partial page or ``max_pages`` reached. Returns the raw
    items of every page, in page order.
    """
    out = []
    for page in range(1, max_pages + 1):
        activities = client.get_activities(after=after_epoch, page=page, per_page=page_size)
        out.extend(activities)
        logger.info("  Strava page %d: %d activities", page, len(activities))
        if len(activities) < page_size:
            break
    return out


def minimize_fresh(raw_items, cached):
    """Minimize freshly fetched items, carrying over cached detail_attempted flags.

    A summary re-fetched after its detail lookup keeps the energy fields the
    lookup filled in, unless the summary now reports them itself.
    """
    by_id = {r.id: r for r in cached if r.id}
    fresh = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        previous = by_id.get(raw.get("id"))
        record = minimize_activity(raw, detail_attempted=previous.detail_attempted if previous else False)
        if previous and previous.detail_attempted:
            if record.calories_kcal is None:
                record.calories_kcal = previous.calories_kcal
            if record.kilojoules_kj is None:
                record.kilojoules_kj = previous.kilojoules_kj
        fresh.append(record)
    return fresh


def merge_activities(cached, fresh):
    """Merge fresh records over the cache by id; fresh always wins.

    Records without an id are dropped. The result is sorted by UTC start
    time, newest first.
    """
    by_id: OrderedDict = OrderedDict()
    for record in cached:
        by_id[record.id] = record
    for record in fresh:
        by_id[record.id] = record

    merged = [r for r in by_id.values() if r.id]
    merged.sort(key=lambda r: r.start_epoch, reverse=True)
    return merged


def backfill_details(client, merged, fresh_ids, detail_max):
    """Fill in energy data for new activities via per-activity detail lookups.

    Walks ``merged`` newest-first. Only activities fetched this run, never
    attempted before and lacking both calories and kilojoules are looked up.
    Every lookup, failed or not, uses up one unit of ``detail_max``; each
    activity is attempted at most once for its whole lifetime.

    Returns the number of successful lookups.
    """
    if detail_max <= 0:
        return 0

    queue = [r for r in merged if r.id and r.id in fresh_ids and not r.detail_attempted]
    calls = 0
    fetched = 0
    for record in queue:
        if calls >= detail_max:
            break
        if record.has_energy:
            record.detail_attempted = True
            continue
        calls += 1
        try:
            detail = client.get_activity(record.id)
            patch = minimize_activity(detail)
            if patch.id is None:
                patch.id = record.id
            record.update_from(patch)
            fetched += 1
        except Exception as e:
            logger.warning("  Detail lookup for activity %s skipped: %s", record.id, e)
        finally:
            record.detail_attempted = True
    return fetched


def next_watermark(merged: list[ActivityRecord], current: int) -> int:
    """Lower bound for the next fetch: newest start minus a safety margin."""
    newest_epoch = merged[0].start_epoch if merged else 0
    if newest_epoch <= 0:
        return current
    return max(0, newest_epoch - WATERMARK_MARGIN_S)
