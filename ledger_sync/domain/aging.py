"""Aging classification of outstanding charges"""

from datetime import date, datetime

from ledger_sync.domain.models import AgingBucket
from ledger_sync.utils.date_utils import days_between

# Upper bound (inclusive) of each named range, youngest first
BUCKET_UPPER_BOUNDS = (
    (30, AgingBucket.CURRENT),
    (60, AgingBucket.DAYS_31_60),
    (90, AgingBucket.DAYS_61_90),
)


def classify(age_days: int) -> AgingBucket:
    """
    Map an elapsed age in days to its aging bucket.

    Boundaries:
    - 0-30:  CURRENT (a charge exactly 30 days old is still current)
    - 31-60: DAYS_31_60
    - 61-90: DAYS_61_90
    - 91+:   OVER_90
    """
    for upper, bucket in BUCKET_UPPER_BOUNDS:
        if age_days <= upper:
            return bucket
    return AgingBucket.OVER_90


def age_in_days(occurred_at: date | datetime, as_of: date | datetime) -> int:
    return days_between(occurred_at, as_of)


def empty_buckets() -> dict[AgingBucket, int]:
    return {bucket: 0 for bucket in AgingBucket}
