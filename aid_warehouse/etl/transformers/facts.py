"""Assemble fact rows from raw records.

Both assemblers resolve every dimension of a record before committing any of
them, so a rejected record never leaves a partial trace in the warehouse.
Rejections are returned to the caller and appended to the rejection log.

The two tables deliberately use opposite duplicate policies:
- fact_aid_transaction: first occurrence of an iati_id wins, later ones are
  rejected (superseded transaction versions in the feed).
- fact_country_context: the last observation of a (country, year) wins
  (indicator revisions).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from aid_warehouse.etl.build_log import Rejection, RejectionLog
from aid_warehouse.etl.errors import (
    DuplicateRecordError,
    InvalidValueError,
    MissingFieldError,
    RecordError,
)
from aid_warehouse.etl.lookups import UNSPECIFIED_CODE
from aid_warehouse.etl.transformers.dimensions import (
    ANNUAL_QUARTER,
    DimensionBuilder,
    PreparedMember,
)
from aid_warehouse.etl.transformers.fields import get_raw, get_text, to_bool, to_float

logger = logging.getLogger(__name__)

AID_TRANSACTION_COLUMNS = (
    "iati_id",
    "value_usd",
    "humanitarian",
    "country_id",
    "time_id",
    "sector_id",
    "reporting_org_id",
    "aid_type_id",
    "transaction_type_id",
)

# fact column -> dimension name
AID_TRANSACTION_FOREIGN_KEYS = {
    "country_id": "country",
    "time_id": "time",
    "sector_id": "sector",
    "reporting_org_id": "organization",
    "aid_type_id": "aid_type",
    "transaction_type_id": "transaction_type",
}

COUNTRY_CONTEXT_FOREIGN_KEYS = {
    "country_id": "country",
    "time_id": "time",
}


@dataclass(frozen=True)
class AidTransactionFact:
    iati_id: str
    value_usd: float
    humanitarian: bool
    country_id: int
    time_id: int
    sector_id: int
    reporting_org_id: int
    aid_type_id: int
    transaction_type_id: int

    def as_record(self) -> dict[str, Any]:
        return {c: getattr(self, c) for c in AID_TRANSACTION_COLUMNS}


@dataclass(frozen=True)
class CountryContextFact:
    country_id: int
    time_id: int
    indicators: dict[str, float | None] = field(default_factory=dict)

    def as_record(self, indicator_columns: tuple[str, ...]) -> dict[str, Any]:
        record: dict[str, Any] = {"country_id": self.country_id, "time_id": self.time_id}
        for column in indicator_columns:
            record[column] = self.indicators.get(column)
        return record


class AidTransactionAssembler:
    """One fact_aid_transaction row per source iati_id."""

    table = "fact_aid_transaction"
    source = "transactions"

    ID_FIELDS = ("iati_id", "iati_identifier", "transaction_id")
    VALUE_FIELDS = ("value_usd", "usd_value")
    DATE_FIELDS = ("date", "transaction_date")

    def __init__(
        self,
        builders: Mapping[str, DimensionBuilder],
        rejections: RejectionLog | None = None,
    ):
        self.builders = builders
        self.rejections = rejections if rejections is not None else RejectionLog()
        self._facts: dict[str, AidTransactionFact] = {}
        self._position = 0

    def assemble(self, raw: Mapping[str, Any]) -> AidTransactionFact | Rejection:
        self._position += 1
        iati_id = get_text(raw, *self.ID_FIELDS)
        record_id = iati_id or f"<record {self._position}>"
        try:
            fact = self._build(raw, iati_id)
        except RecordError as e:
            return self._reject(record_id, e)
        self._facts[fact.iati_id] = fact
        return fact

    def _build(self, raw: Mapping[str, Any], iati_id: str | None) -> AidTransactionFact:
        if iati_id is None:
            raise MissingFieldError("iati_id is required", field="iati_id")
        if iati_id in self._facts:
            raise DuplicateRecordError(f"duplicate iati_id {iati_id!r}", field="iati_id")

        raw_value = get_raw(raw, *self.VALUE_FIELDS)
        if raw_value is None:
            raise MissingFieldError("value_usd is required", field="value_usd")
        try:
            value_usd = to_float(raw_value)
        except (TypeError, ValueError) as e:
            raise InvalidValueError(f"value_usd is not a finite number: {raw_value!r}", field="value_usd") from e

        if get_raw(raw, *self.DATE_FIELDS) is None:
            raise MissingFieldError("transaction date is required", field="date", dimension="time")

        try:
            humanitarian = to_bool(raw.get("humanitarian"), default=False)
        except ValueError as e:
            raise InvalidValueError(str(e), field="humanitarian") from e

        prepared = {
            name: self.builders[name].prepare(raw)
            for name in ("country", "time", "sector", "organization", "aid_type", "transaction_type")
        }

        transaction_type = prepared["transaction_type"].natural_key[0]
        if value_usd < 0 and transaction_type not in self._signed_types():
            raise InvalidValueError(
                f"negative value_usd {value_usd} not permitted for transaction type {transaction_type!r}",
                field="value_usd",
            )

        keys = self._commit(prepared)
        return AidTransactionFact(
            iati_id=iati_id,
            value_usd=value_usd,
            humanitarian=humanitarian,
            country_id=keys["country"],
            time_id=keys["time"],
            sector_id=keys["sector"],
            reporting_org_id=keys["organization"],
            aid_type_id=keys["aid_type"],
            transaction_type_id=keys["transaction_type"],
        )

    def _signed_types(self) -> frozenset[str]:
        lookups = self.builders["transaction_type"].lookups
        return lookups.signed_transaction_types | {UNSPECIFIED_CODE}

    def _commit(self, prepared: Mapping[str, PreparedMember]) -> dict[str, int]:
        return {name: self.builders[name].commit(member) for name, member in prepared.items()}

    def _reject(self, record_id: str, error: RecordError) -> Rejection:
        rejection = Rejection(
            table=self.table,
            record_id=record_id,
            reason=str(error),
            dimension=error.dimension,
            source=self.source,
        )
        self.rejections.record(rejection)
        logger.debug("rejected %s %s: %s", self.table, record_id, error)
        return rejection

    def remap_keys(self, remaps: Mapping[str, Mapping[int, int]]) -> None:
        """Apply renumbered dimension keys, given per dimension as old -> new."""
        for iati_id, fact in self._facts.items():
            changes = {
                column: remaps[dimension][getattr(fact, column)]
                for column, dimension in AID_TRANSACTION_FOREIGN_KEYS.items()
                if getattr(fact, column) in remaps.get(dimension, {})
            }
            if changes:
                self._facts[iati_id] = replace(fact, **changes)

    def facts(self) -> list[AidTransactionFact]:
        return list(self._facts.values())

    def records(self) -> list[dict[str, Any]]:
        return [fact.as_record() for fact in self._facts.values()]

    def __len__(self) -> int:
        return len(self._facts)


class CountryContextAssembler:
    """One fact_country_context row per (country, year); later observations win."""

    table = "fact_country_context"
    source = "observations"

    def __init__(
        self,
        builders: Mapping[str, DimensionBuilder],
        indicators: tuple[str, ...] = ("population", "gdp_per_capita"),
        rejections: RejectionLog | None = None,
    ):
        self.builders = builders
        self.indicators = tuple(indicators)
        self.rejections = rejections if rejections is not None else RejectionLog()
        self._facts: dict[tuple[int, int], CountryContextFact] = {}
        self.revisions = 0
        self._position = 0

    @property
    def columns(self) -> tuple[str, ...]:
        return ("country_id", "time_id") + self.indicators

    def assemble(self, raw: Mapping[str, Any]) -> CountryContextFact | Rejection:
        self._position += 1
        record_id = self._record_id(raw)
        try:
            fact = self._build(raw, record_id)
        except RecordError as e:
            return self._reject(record_id, e)

        grain = (fact.country_id, fact.time_id)
        if grain in self._facts:
            self.revisions += 1
            logger.debug("revised %s %s", self.table, record_id)
        # dict assignment keeps the first-seen position for a revised key
        self._facts[grain] = fact
        return fact

    def _record_id(self, raw: Mapping[str, Any]) -> str:
        country = get_text(raw, "country", "country_code", "iso3", "iso_code", "country_name")
        year = get_text(raw, "year")
        if country is None and year is None:
            return f"<record {self._position}>"
        return f"{country or '?'}:{year or '?'}"

    def _build(self, raw: Mapping[str, Any], record_id: str) -> CountryContextFact:
        if get_raw(raw, "year") is None:
            raise MissingFieldError("year is required", field="year", dimension="time")

        country = self.builders["country"].prepare(raw)
        time = self.builders["time"].prepare(
            {"year": raw.get("year"), "quarter": ANNUAL_QUARTER}
        )

        indicators = {}
        for column in self.indicators:
            value = raw.get(column)
            try:
                indicators[column] = to_float(value)
            except (TypeError, ValueError):
                logger.warning("%s %s: %s=%r is not numeric, stored as null", self.table, record_id, column, value)
                indicators[column] = None

        country_id = self.builders["country"].commit(country)
        time_id = self.builders["time"].commit(time)
        return CountryContextFact(country_id=country_id, time_id=time_id, indicators=indicators)

    def _reject(self, record_id: str, error: RecordError) -> Rejection:
        rejection = Rejection(
            table=self.table,
            record_id=record_id,
            reason=str(error),
            dimension=error.dimension,
            source=self.source,
        )
        self.rejections.record(rejection)
        logger.debug("rejected %s %s: %s", self.table, record_id, error)
        return rejection

    def remap_keys(self, remaps: Mapping[str, Mapping[int, int]]) -> None:
        countries = remaps.get("country", {})
        times = remaps.get("time", {})
        remapped = {}
        for fact in self._facts.values():
            fact = replace(
                fact,
                country_id=countries.get(fact.country_id, fact.country_id),
                time_id=times.get(fact.time_id, fact.time_id),
            )
            remapped[(fact.country_id, fact.time_id)] = fact
        self._facts = remapped

    def facts(self) -> list[CountryContextFact]:
        return list(self._facts.values())

    def records(self) -> list[dict[str, Any]]:
        return [fact.as_record(self.indicators) for fact in self._facts.values()]

    def __len__(self) -> int:
        return len(self._facts)
