"""Best-of-two-metrics personal record detection.

For a (client, exercise) pair there is at most one active record per type:
``max_weight`` (heaviest single set) and ``max_volume`` (best weight x reps).
A candidate only replaces the holder when it is strictly greater; ties keep
the existing record.
"""

from __future__ import annotations

import datetime
from typing import Iterable, NamedTuple, Optional

from models import PersonalRecord, isoformat, new_id, utc_now

RECORD_TYPES = (("max_weight", "weight"), ("max_volume", "volume"))


class RecordUpdate(NamedTuple):
    records: list[PersonalRecord]
    created: list[PersonalRecord]

    @property
    def improved(self) -> bool:
        return bool(self.created)


def current_best(
    records: Iterable[PersonalRecord], client_id: str, exercise_id: str, record_type: str
) -> Optional[PersonalRecord]:
    """Return the active holder of ``record_type`` for the pair, if any."""
    holders = [
        r
        for r in records
        if r.client_id == client_id
        and r.exercise_id == exercise_id
        and r.type == record_type
    ]
    return max(holders, key=lambda r: r.value, default=None)


def detect_records(
    existing: Iterable[PersonalRecord],
    client_id: str,
    exercise_id: str,
    weight: float,
    volume: float,
    workout_id: str,
    video_uri: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> RecordUpdate:
    """Evaluate a completed set against the pair's current records.

    Both record types are checked independently. Holders of an improved type
    are dropped from the returned collection and the new records appended;
    a type that did not improve keeps its holder untouched.
    """
    existing = list(existing)
    now = now or utc_now()
    base_ms = int(now.timestamp() * 1000)
    candidates = {"max_weight": weight, "max_volume": volume}

    created: list[PersonalRecord] = []
    for record_type, suffix in RECORD_TYPES:
        value = candidates[record_type]
        holder = current_best(existing, client_id, exercise_id, record_type)
        if holder is not None and not value > holder.value:
            continue
        created.append(
            PersonalRecord(
                id=new_id(suffix, base_ms),
                client_id=client_id,
                exercise_id=exercise_id,
                type=record_type,
                value=value,
                date=isoformat(now),
                workout_id=workout_id,
                video_uri=video_uri,
            )
        )

    if not created:
        return RecordUpdate(existing, [])

    improved = {r.type for r in created}
    kept = [
        r
        for r in existing
        if not (
            r.client_id == client_id
            and r.exercise_id == exercise_id
            and r.type in improved
        )
    ]
    return RecordUpdate(kept + created, created)
