"""
src/context/selectors.py

Read-side helpers over the key-value store: token usage analytics and stored summaries.
"""


import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from config import SUMMARY_PREFIX, USAGE_KEY, TimeRange
from context.store import KeyValueStore
from orchestrator.models import UsageRecord


LOGGER = logging.getLogger(__name__)

_RANGE_DAYS = {TimeRange.WEEK: 7, TimeRange.MONTH: 30}


async def load_usage(store: KeyValueStore) -> List[UsageRecord]:
    """Usage log as records; malformed entries are skipped."""

    raw = await store.get(USAGE_KEY) or []
    out = []

    for item in raw:
        try:
            out.append(UsageRecord.model_validate(item))
        except ValueError:
            LOGGER.debug("Skipping malformed usage entry: %r", item)

    return out

def filter_range(records: List[UsageRecord], time_range: TimeRange, now: Optional[datetime] = None) -> List[UsageRecord]:
    """Keep records newer than the range window (all of them for TimeRange.ALL)."""

    days = _RANGE_DAYS.get(TimeRange(time_range))

    if days is None:
        return list(records)

    now = now or datetime.now(timezone.utc)
    window = timedelta(days=days)

    return [r for r in records if now - _aware(r.date) < window]

def _aware(dt: datetime) -> datetime:

    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _bucket(records: List[UsageRecord], key) -> Dict[str, Dict[str, int]]:

    out: Dict[str, Dict[str, int]] = {}

    for r in records:
        b = out.setdefault(key(r), {"tokens": 0, "requests": 0, "duration_ms": 0})
        b["tokens"] += r.tokens
        b["requests"] += 1
        b["duration_ms"] += r.duration_ms

    return out

def usage_by_date(records: List[UsageRecord]) -> Dict[str, Dict[str, int]]:
    """{"YYYY-MM-DD": {tokens, requests, duration_ms}} in date order."""

    buckets = _bucket(records, lambda r: _aware(r.date).date().isoformat())

    return dict(sorted(buckets.items()))

def usage_by_model(records: List[UsageRecord]) -> Dict[str, Dict[str, int]]:
    """Per-model buckets, heaviest token users first."""

    buckets = _bucket(records, lambda r: r.model_id)

    return dict(sorted(buckets.items(), key=lambda kv: kv[1]["tokens"], reverse=True))

def usage_totals(records: List[UsageRecord]) -> Dict[str, float]:

    by_date = usage_by_date(records)
    total_tokens = sum(r.tokens for r in records)
    total_duration = sum(r.duration_ms for r in records)

    return {
        "requests": len(records),
        "tokens": total_tokens,
        "avg_tokens_per_request": (total_tokens / len(records)) if records else 0.0,
        "avg_duration_ms_per_day": (total_duration / len(by_date)) if by_date else 0.0,
    }

async def list_summaries(store: KeyValueStore, project_root: str = "") -> List[str]:
    """Paths that have a stored summary, restricted to `project_root` when given."""

    root = project_root.removeprefix("./") if project_root not in ("./", ".") else ""
    keys = await store.list(SUMMARY_PREFIX)
    paths = [k[len(SUMMARY_PREFIX):] for k in keys]

    return [p for p in paths if p.startswith(root)]
