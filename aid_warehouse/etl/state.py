"""Persisted ETL state: surrogate key maps and the build log."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from aid_warehouse.etl.build_log import BuildSummary
from aid_warehouse.etl.keys import KeyResolver, NaturalKey
from aid_warehouse.models.reporting import EtlBuildLog, EtlKeyMap


def load_key_map(session: Session) -> dict[str, list[tuple[NaturalKey, int]]]:
    """Read every persisted (natural_key, surrogate_key) pair, per dimension."""
    rows = session.execute(
        select(EtlKeyMap.dimension, EtlKeyMap.natural_key, EtlKeyMap.surrogate_key)
        .order_by(EtlKeyMap.dimension, EtlKeyMap.surrogate_key)
    ).all()
    key_map: dict[str, list[tuple[NaturalKey, int]]] = {}
    for dimension, natural_key, surrogate_key in rows:
        key_map.setdefault(dimension, []).append((tuple(natural_key), surrogate_key))
    return key_map


def save_key_map(session: Session, resolver: KeyResolver) -> int:
    """Replace the persisted key map with the resolver's current mapping.

    Mappings are never dropped by the resolver, so the new map is a superset
    of any map it was seeded from.
    """
    rows = [
        {"dimension": dimension, "natural_key": list(natural_key), "surrogate_key": key}
        for dimension, pairs in resolver.snapshot().items()
        for natural_key, key in pairs
    ]
    session.execute(delete(EtlKeyMap))
    if rows:
        session.execute(insert(EtlKeyMap), rows)
    return len(rows)


def mark_build_started(session: Session, build_id: str | None = None) -> str:
    """Record that a build has started; returns the build id."""
    build_id = build_id or str(uuid.uuid4())
    session.add(EtlBuildLog(
        build_id=build_id,
        started_at=datetime.now(timezone.utc),
        status="in_progress",
    ))
    session.flush()
    return build_id


def mark_build_completed(session: Session, build_id: str, summary: BuildSummary) -> None:
    entry = session.get(EtlBuildLog, build_id)
    if entry is None:
        raise LookupError(f"No build log entry for {build_id}")
    entry.completed_at = datetime.now(timezone.utc)
    entry.status = summary.status
    entry.records_read = sum(summary.records_read.values())
    entry.rows_loaded = sum(
        stats.rows for table, stats in summary.tables.items() if table.startswith("fact_")
    )
    entry.rows_rejected = sum(stats.rejected for stats in summary.tables.values())
    entry.conflicts = sum(
        stats.warned for table, stats in summary.tables.items() if table.startswith("dim_")
    )
    entry.error = summary.error
    session.flush()
