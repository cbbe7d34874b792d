"""Build the conformed star schema from the two raw extracts.

Usage:
    build = WarehouseBuild.from_settings(settings)
    result = build.run(transactions=..., observations=...)

The default pass is single-threaded: transactions first, then observations.
With ``parallel=True`` the two sources are scanned on separate threads; the
key resolver's per-dimension locks keep Country and Time allocation mutually
exclusive between them. Surrogate key values may then differ between runs,
but row contents never do.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from aid_warehouse.etl.build_log import BuildSummary, ConflictLog, RejectionLog, TableStats
from aid_warehouse.etl.errors import IntegrityViolation
from aid_warehouse.etl.keys import KeyResolver, NaturalKey
from aid_warehouse.etl.lookups import Lookups
from aid_warehouse.etl.transformers.dimensions import DimensionBuilder, default_builders
from aid_warehouse.etl.transformers.facts import (
    AID_TRANSACTION_COLUMNS,
    AID_TRANSACTION_FOREIGN_KEYS,
    COUNTRY_CONTEXT_FOREIGN_KEYS,
    AidTransactionAssembler,
    CountryContextAssembler,
)
from aid_warehouse.etl.transformers.integrity import verify_star_schema

logger = logging.getLogger(__name__)

DIMENSION_ORDER = ("time", "country", "sector", "organization", "aid_type", "transaction_type")


@dataclass
class BuildResult:
    tables: dict[str, list[dict[str, Any]]]
    columns: dict[str, tuple[str, ...]]
    rejections: RejectionLog
    conflicts: ConflictLog
    summary: BuildSummary
    resolver: KeyResolver


class WarehouseBuild:
    """One build pass: shared resolver, six dimension builders, two assemblers."""

    def __init__(
        self,
        resolver: KeyResolver | None = None,
        lookups: Lookups | None = None,
        indicators: tuple[str, ...] = ("population", "gdp_per_capita"),
        min_year: int = 1900,
        max_year: int = 2100,
    ):
        self.resolver = resolver or KeyResolver()
        self.lookups = lookups or Lookups.default()
        self.rejections = RejectionLog()
        self.conflicts = ConflictLog()
        self.builders: dict[str, DimensionBuilder] = default_builders(
            self.resolver, self.lookups, self.conflicts, min_year=min_year, max_year=max_year
        )
        self.transactions = AidTransactionAssembler(self.builders, self.rejections)
        self.context = CountryContextAssembler(self.builders, indicators, self.rejections)
        self.records_read = {self.transactions.source: 0, self.context.source: 0}
        self.seeded = False

    @classmethod
    def from_settings(cls, settings, resolver: KeyResolver | None = None) -> "WarehouseBuild":
        return cls(
            resolver=resolver,
            lookups=Lookups.from_settings(settings),
            indicators=settings.context_indicators,
            min_year=settings.etl_min_year,
            max_year=settings.etl_max_year,
        )

    def seed_keys(self, key_map: Mapping[str, Iterable[tuple[NaturalKey, int]]]) -> int:
        """Seed the resolver from a persisted key map before ingesting."""
        loaded = 0
        for dimension, pairs in key_map.items():
            if dimension not in self.builders:
                logger.warning("ignoring persisted keys for unknown dimension %r", dimension)
                continue
            loaded += self.resolver.seed(dimension, pairs)
        self.seeded = True
        logger.info("seeded %d surrogate keys", loaded)
        return loaded

    def ingest_transactions(self, records: Iterable[Mapping[str, Any]]) -> int:
        count = 0
        for raw in records:
            self.transactions.assemble(raw)
            count += 1
        self.records_read[self.transactions.source] += count
        logger.info("read %d transaction records, %d facts", count, len(self.transactions))
        return count

    def ingest_observations(self, records: Iterable[Mapping[str, Any]]) -> int:
        count = 0
        for raw in records:
            self.context.assemble(raw)
            count += 1
        self.records_read[self.context.source] += count
        logger.info("read %d indicator observations, %d facts", count, len(self.context))
        return count

    def run(
        self,
        transactions: Iterable[Mapping[str, Any]] = (),
        observations: Iterable[Mapping[str, Any]] = (),
        parallel: bool = False,
    ) -> BuildResult:
        if parallel:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ingest") as pool:
                futures = [
                    pool.submit(self.ingest_transactions, transactions),
                    pool.submit(self.ingest_observations, observations),
                ]
                for future in futures:
                    future.result()
        else:
            self.ingest_transactions(transactions)
            self.ingest_observations(observations)
        return self.finish()

    def append_keys_in_natural_order(self) -> None:
        """Renumber keys first allocated in this seeded pass by natural key.

        New members then get the same keys whatever the record order or
        thread interleaving.
        """
        remaps = {}
        for name in DIMENSION_ORDER:
            remap = self.resolver.reorder_appended(name)
            if remap:
                self.builders[name].remap_keys(remap)
                remaps[name] = remap
        if remaps:
            self.transactions.remap_keys(remaps)
            self.context.remap_keys(remaps)
            logger.info("renumbered appended keys in %s", sorted(remaps))

    def columns(self) -> dict[str, tuple[str, ...]]:
        columns = {}
        for name in DIMENSION_ORDER:
            builder = self.builders[name]
            columns[builder.table] = (builder.key_column,) + builder.columns
        columns[self.transactions.table] = AID_TRANSACTION_COLUMNS
        columns[self.context.table] = self.context.columns
        return columns

    def tables(self) -> dict[str, list[dict[str, Any]]]:
        tables = {self.builders[name].table: self.builders[name].records() for name in DIMENSION_ORDER}
        tables[self.transactions.table] = self.transactions.records()
        tables[self.context.table] = self.context.records()
        return tables

    def summarize(self, tables: Mapping[str, list]) -> BuildSummary:
        summary = BuildSummary(records_read=dict(self.records_read))
        for name in DIMENSION_ORDER:
            builder = self.builders[name]
            summary.tables[builder.table] = TableStats(
                rows=len(tables[builder.table]),
                warned=self.conflicts.count(name),
            )
        for assembler in (self.transactions, self.context):
            summary.tables[assembler.table] = TableStats(
                rows=len(tables[assembler.table]),
                rejected=self.rejections.count(assembler.table),
                warned=getattr(assembler, "revisions", 0),
            )
        return summary

    def finish(self) -> BuildResult:
        """Verify the finished tables and package them for the table writers.

        Raises:
            IntegrityViolation: with a ``summary`` attribute describing the build
        """
        if self.seeded:
            self.append_keys_in_natural_order()
        tables = self.tables()
        summary = self.summarize(tables)
        try:
            verify_star_schema(
                self.builders,
                [
                    (
                        self.transactions.table,
                        tables[self.transactions.table],
                        AID_TRANSACTION_FOREIGN_KEYS,
                        ("iati_id",),
                    ),
                    (
                        self.context.table,
                        tables[self.context.table],
                        COUNTRY_CONTEXT_FOREIGN_KEYS,
                        ("country_id", "time_id"),
                    ),
                ],
                resolver=self.resolver,
            )
        except IntegrityViolation as e:
            summary.status = "failed"
            summary.error = str(e)
            summary.violations = e.violations
            e.summary = summary
            raise

        logger.info(
            "build complete: %d transaction facts, %d context facts, %d rejected, %d conflicts",
            len(tables[self.transactions.table]),
            len(tables[self.context.table]),
            len(self.rejections),
            len(self.conflicts),
        )
        return BuildResult(
            tables=tables,
            columns=self.columns(),
            rejections=self.rejections,
            conflicts=self.conflicts,
            summary=summary,
            resolver=self.resolver,
        )
