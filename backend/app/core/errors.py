"""Error classification for enrollment failures and batch-level exceptions"""
import re

MAX_TRANSIENT_FAILURES = 3

# Retry in a later run
TRANSIENT_PATTERNS = [
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"timed out", re.IGNORECASE),
    re.compile(r"rate.?limit", re.IGNORECASE),
    re.compile(r"too.?many.?requests", re.IGNORECASE),
    re.compile(r"\b50[234]\b"),
    re.compile(r"ECONNRESET|connection reset", re.IGNORECASE),
    re.compile(r"ETIMEDOUT"),
    re.compile(r"network", re.IGNORECASE),
    re.compile(r"temporarily", re.IGNORECASE),
]

# Outreach workspace is full: stop the whole run
LEAD_LIMIT_PATTERNS = [
    re.compile(r"lead.?limit", re.IGNORECASE),
    re.compile(r"leads?.{0,20}limit (reached|exceeded)", re.IGNORECASE),
    re.compile(r"upload(ed)? leads? limit", re.IGNORECASE),
    re.compile(r"upgrade your plan", re.IGNORECASE),
]

# Host killed or is about to kill the invocation: leave the batch resumable
TIMEOUT_PATTERNS = [
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"timed out", re.IGNORECASE),
    re.compile(r"FUNCTION_INVOCATION_TIMEOUT"),
    re.compile(r"function invocation", re.IGNORECASE),
    re.compile(r"execution time", re.IGNORECASE),
]


def _matches(patterns, text: str) -> bool:
    return any(p.search(text or "") for p in patterns)


def is_transient_error(message: str) -> bool:
    return _matches(TRANSIENT_PATTERNS, message)


def is_lead_limit_error(message: str) -> bool:
    return _matches(LEAD_LIMIT_PATTERNS, message)


def is_timeout_error(message: str) -> bool:
    return _matches(TIMEOUT_PATTERNS, message)


class BatchNotFoundError(LookupError):
    """No batch with the given id"""


class NothingToCancelError(Exception):
    """Batch is already finished, or no batch is running"""
