"""Aggregations over assignment logs and batches for the dashboard"""
from collections import defaultdict
from typing import Any, Dict, Iterable

from backend.app.models import ResultStatus

SKIP_BUCKETS = {
    ResultStatus.SKIPPED_CUSTOMER.value: "skipped_klant",
    ResultStatus.SKIPPED_ENRICHMENT_FAILED.value: "skipped_ai_error",
    ResultStatus.SKIPPED_DUPLICATE.value: "skipped_duplicate",
    ResultStatus.SKIPPED_SUPPRESSED.value: "skipped_blocklisted",
    ResultStatus.SKIPPED_NO_CAMPAIGN.value: "skipped_no_campaign",
    ResultStatus.SKIPPED_LEAD_LIMIT.value: "skipped_lead_limit",
    ResultStatus.SKIPPED_DRY_RUN.value: "skipped_dry_run",
}


def _outcome(status: str) -> str:
    if status == ResultStatus.ADDED.value:
        return "added"
    if status == ResultStatus.ERROR.value:
        return "errors"
    return "skipped"


def summarize_logs(logs: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals, skip reasons and per-platform counters for a set of log rows"""
    stats: Dict[str, int] = {"total": 0, "added": 0, "skipped": 0, "errors": 0}
    stats.update({bucket: 0 for bucket in SKIP_BUCKETS.values()})
    platform_stats: Dict[str, Dict[str, int]] = defaultdict(lambda: {"added": 0, "skipped": 0, "errors": 0})

    for log in logs:
        status = log.get("status") or ""
        outcome = _outcome(status)
        stats["total"] += 1
        stats[outcome] += 1
        if status in SKIP_BUCKETS:
            stats[SKIP_BUCKETS[status]] += 1
        platform_stats[log.get("platform_name") or "Unknown"][outcome] += 1

    success_rate = round(stats["added"] / stats["total"] * 100) if stats["total"] else 0
    return {
        "stats": {**stats, "success_rate": success_rate},
        "platform_stats": dict(platform_stats),
    }


def daily_trend(logs: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    """added/skipped/errors per calendar day (UTC date of created_at)"""
    trend: Dict[str, Dict[str, int]] = defaultdict(lambda: {"added": 0, "skipped": 0, "errors": 0})
    for log in logs:
        day = str(log.get("created_at") or "")[:10]
        if day:
            trend[day][_outcome(log.get("status") or "")] += 1
    return dict(sorted(trend.items()))


def batch_totals(batches: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Summed counters of batch rows (e.g. all batches started today)"""
    totals = {"batches": 0, "added": 0, "skipped": 0, "errors": 0}
    for batch in batches:
        totals["batches"] += 1
        for field in ("added", "skipped", "errors"):
            totals[field] += batch.get(field) or 0
    return totals
