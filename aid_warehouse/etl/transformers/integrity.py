"""Post-build invariant checks over the finished star schema.

Any violation here means the builders or assemblers broke their own
contract, so it is raised as a fatal IntegrityViolation rather than logged
as a rejected record.
"""

import logging
from collections import Counter
from typing import Any, Iterable, Mapping

from aid_warehouse.etl.errors import IntegrityViolation
from aid_warehouse.etl.keys import KeyResolver
from aid_warehouse.etl.transformers.dimensions import DimensionBuilder
from aid_warehouse.etl.transformers.fields import is_missing

logger = logging.getLogger(__name__)


def _duplicates(keys: Iterable[Any]) -> dict[Any, int]:
    return {k: n for k, n in Counter(keys).items() if n > 1}


def check_dimension(builder: DimensionBuilder, resolver: KeyResolver | None = None) -> list[dict]:
    """Natural-key uniqueness, populated attributes and agreement with the resolver."""
    violations = []
    rows = builder.rows()

    for natural_key, count in _duplicates(row.natural_key for row in rows).items():
        violations.append({
            "table": builder.table,
            "check": "duplicate_natural_key",
            "key": natural_key,
            "count": count,
        })

    for key, count in _duplicates(row.surrogate_key for row in rows).items():
        violations.append({
            "table": builder.table,
            "check": "duplicate_surrogate_key",
            "key": key,
            "count": count,
        })

    for row in rows:
        missing = [name for name, value in row.attributes.items() if is_missing(value)]
        if missing:
            violations.append({
                "table": builder.table,
                "check": "partial_row",
                "key": row.surrogate_key,
                "count": len(missing),
            })
        if resolver is not None:
            resolved = resolver.lookup(builder.name, row.natural_key)
            if resolved != row.surrogate_key:
                violations.append({
                    "table": builder.table,
                    "check": "resolver_mismatch",
                    "key": row.natural_key,
                    "count": 1,
                })
    return violations


def check_foreign_keys(
    table: str,
    records: list[Mapping[str, Any]],
    foreign_keys: Mapping[str, str],
    builders: Mapping[str, DimensionBuilder],
) -> list[dict]:
    violations = []
    for column, dimension in foreign_keys.items():
        known = {row.surrogate_key for row in builders[dimension].rows()}
        orphans = Counter(r[column] for r in records if r[column] not in known)
        for key, count in orphans.items():
            violations.append({
                "table": table,
                "check": f"orphan_{column}",
                "key": key,
                "count": count,
            })
    return violations


def check_grain(table: str, records: list[Mapping[str, Any]], grain: tuple[str, ...]) -> list[dict]:
    keys = (tuple(r[c] for c in grain) for r in records)
    return [
        {"table": table, "check": "duplicate_grain", "key": key, "count": count}
        for key, count in _duplicates(keys).items()
    ]


def verify_star_schema(
    builders: Mapping[str, DimensionBuilder],
    facts: Iterable[tuple[str, list[Mapping[str, Any]], Mapping[str, str], tuple[str, ...]]],
    resolver: KeyResolver | None = None,
) -> None:
    """Run every check and raise IntegrityViolation if any fails.

    Args:
        builders: Dimension builders by dimension name
        facts: (table, records, foreign key column -> dimension, grain columns)
        resolver: Key resolver to cross-check dimension keys against
    """
    violations: list[dict] = []
    for builder in builders.values():
        violations.extend(check_dimension(builder, resolver))
    for table, records, foreign_keys, grain in facts:
        violations.extend(check_foreign_keys(table, records, foreign_keys, builders))
        violations.extend(check_grain(table, records, grain))

    if violations:
        for v in violations:
            logger.error("integrity violation: %s", v)
        raise IntegrityViolation(violations)
    logger.info("integrity checks passed for %d dimensions", len(builders))
