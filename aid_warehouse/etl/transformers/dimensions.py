"""Conform raw attribute bundles into the shared dimension tables.

Each builder normalizes a bundle into a canonical natural key plus
descriptive attributes (``prepare``), then resolves the surrogate key and
stores the row (``commit``). ``prepare`` never mutates state, so a fact
assembler can validate every dimension of a record before touching any.

Rows follow a first-write-wins policy: once a natural key has a row, later
bundles with different descriptive attributes are recorded as conflicts and
ignored.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

import pandas as pd

from aid_warehouse.etl.build_log import Conflict, ConflictLog
from aid_warehouse.etl.errors import DateParseError, MissingFieldError, NormalizationError, RecordError
from aid_warehouse.etl.keys import KeyResolver
from aid_warehouse.etl.lookups import UNCATEGORIZED, UNSPECIFIED_CODE, UNSPECIFIED_NAME, Lookups
from aid_warehouse.etl.transformers.fields import get_raw, get_text, is_missing

logger = logging.getLogger(__name__)

ANNUAL_QUARTER = 0


@dataclass
class DimensionRow:
    surrogate_key: int
    natural_key: tuple
    attributes: dict[str, Any]


@dataclass(frozen=True)
class PreparedMember:
    dimension: str
    natural_key: tuple
    attributes: dict[str, Any]
    # source values that lost to a canonical attribute, logged as conflicts on commit
    variants: dict[str, Any] = field(default_factory=dict)


class DimensionBuilder:
    """Base class for the six conformed dimensions."""

    name: str = ""
    table: str = ""
    key_column: str = ""
    natural_key_fields: tuple[str, ...] = ()
    columns: tuple[str, ...] = ()
    conflict_fields: tuple[str, ...] = ()

    def __init__(
        self,
        resolver: KeyResolver,
        lookups: Lookups | None = None,
        conflicts: ConflictLog | None = None,
    ):
        self.resolver = resolver
        self.lookups = lookups or Lookups.default()
        self.conflicts = conflicts if conflicts is not None else ConflictLog()
        self._rows: dict[int, DimensionRow] = {}

    def normalize(self, bundle: Mapping[str, Any]) -> tuple[tuple, dict[str, Any]]:
        raise NotImplementedError

    def source_variants(
        self,
        bundle: Mapping[str, Any],
        natural_key: tuple,
        attributes: dict[str, Any],
    ) -> dict[str, Any]:
        """Source-supplied values the canonical attributes overrode."""
        return {}

    def prepare(self, bundle: Mapping[str, Any]) -> PreparedMember:
        try:
            natural_key, attributes = self.normalize(bundle)
        except RecordError as e:
            if e.dimension is None:
                e.dimension = self.name
            raise
        incomplete = [k for k, v in attributes.items() if is_missing(v)]
        if incomplete:
            raise NormalizationError(
                f"{self.name}: attributes not populated: {incomplete}", dimension=self.name
            )
        variants = self.source_variants(bundle, natural_key, attributes)
        return PreparedMember(self.name, natural_key, attributes, variants)

    def commit(self, prepared: PreparedMember) -> int:
        with self.resolver.lock(self.name):
            key = self.resolver.resolve(self.name, prepared.natural_key)
            row = self._rows.get(key)
            if row is None:
                row = DimensionRow(key, prepared.natural_key, dict(prepared.attributes))
                self._rows[key] = row
            else:
                self._check_conflicts(row, prepared.attributes)
            for column, ignored in prepared.variants.items():
                self._record_conflict(row, column, ignored)
            return key

    def ingest(self, bundle: Mapping[str, Any]) -> int:
        return self.commit(self.prepare(bundle))

    def _check_conflicts(self, row: DimensionRow, attributes: Mapping[str, Any]) -> None:
        for column in self.conflict_fields:
            if row.attributes.get(column) != attributes.get(column):
                self._record_conflict(row, column, attributes.get(column))

    def _record_conflict(self, row: DimensionRow, column: str, ignored: Any) -> None:
        kept = row.attributes.get(column)
        conflict = Conflict(self.name, row.natural_key, column, kept, ignored)
        if self.conflicts.record(conflict):
            logger.warning(
                "%s %r: %s conflict, keeping %r over %r",
                self.name, row.natural_key, column, kept, ignored,
            )

    def remap_keys(self, remap: Mapping[int, int]) -> None:
        """Move rows to renumbered surrogate keys (see KeyResolver.reorder_appended)."""
        if not remap:
            return
        with self.resolver.lock(self.name):
            moved = {}
            for key, row in self._rows.items():
                new_key = remap.get(key, key)
                moved[new_key] = DimensionRow(new_key, row.natural_key, row.attributes)
            self._rows = moved

    def rows(self) -> list[DimensionRow]:
        with self.resolver.lock(self.name):
            return [self._rows[k] for k in sorted(self._rows)]

    def records(self) -> list[dict[str, Any]]:
        """Rows in surrogate-key order, keyed by the table's column names."""
        out = []
        for row in self.rows():
            merged = {self.key_column: row.surrogate_key}
            merged.update(zip(self.natural_key_fields, row.natural_key))
            merged.update(row.attributes)
            out.append({c: merged[c] for c in (self.key_column,) + self.columns})
        return out

    def __len__(self) -> int:
        return len(self._rows)


# -------------------------------------------------------------------
# Time
# -------------------------------------------------------------------


class TimeDimensionBuilder(DimensionBuilder):
    """(year, quarter) derived from a transaction date or an observation year.

    Annual observations use quarter 0.
    """

    name = "time"
    table = "dim_time"
    key_column = "time_id"
    natural_key_fields = ("year", "quarter")
    columns = ("year", "quarter")

    def __init__(self, resolver, lookups=None, conflicts=None, min_year: int = 1900, max_year: int = 2100):
        super().__init__(resolver, lookups, conflicts)
        self.min_year = min_year
        self.max_year = max_year

    def normalize(self, bundle):
        raw_date = get_raw(bundle, "date", "transaction_date")
        if raw_date is not None:
            year, quarter = self.quarter_of(raw_date)
        else:
            raw_year = get_raw(bundle, "year")
            if raw_year is None:
                raise MissingFieldError("date or year is required", field="date")
            year = self.parse_year(raw_year)
            quarter = ANNUAL_QUARTER
            if not is_missing(bundle.get("quarter")):
                try:
                    quarter = int(bundle["quarter"])
                except (TypeError, ValueError) as e:
                    raise DateParseError(f"unparseable quarter {bundle['quarter']!r}", field="quarter") from e
                if quarter not in (0, 1, 2, 3, 4):
                    raise DateParseError(f"quarter out of range: {quarter}", field="quarter")
        return (year, quarter), {}

    def quarter_of(self, value: Any) -> tuple[int, int]:
        parsed = self.parse_date(value)
        return parsed.year, 1 + (parsed.month - 1) // 3

    def parse_date(self, value: Any) -> date:
        if isinstance(value, datetime):
            parsed = value.date()
        elif isinstance(value, date):
            parsed = value
        else:
            try:
                ts = pd.to_datetime(str(value).strip(), format="ISO8601")
            except (ValueError, TypeError, OverflowError) as e:
                raise DateParseError(f"unparseable date {value!r}", field="date") from e
            if pd.isna(ts):
                raise DateParseError(f"unparseable date {value!r}", field="date")
            parsed = ts.date()
        self._check_year(parsed.year, value)
        return parsed

    def parse_year(self, value: Any) -> int:
        text = str(value).strip().upper()
        if text.startswith("YR"):
            text = text[2:]
        try:
            number = float(text)
        except ValueError as e:
            raise DateParseError(f"unparseable year {value!r}", field="year") from e
        if not number.is_integer():
            raise DateParseError(f"unparseable year {value!r}", field="year")
        year = int(number)
        self._check_year(year, value)
        return year

    def _check_year(self, year: int, raw: Any) -> None:
        if not self.min_year <= year <= self.max_year:
            raise DateParseError(
                f"year {year} outside {self.min_year}-{self.max_year} (raw {raw!r})",
                field="date",
            )


# -------------------------------------------------------------------
# Country
# -------------------------------------------------------------------


class CountryDimensionBuilder(DimensionBuilder):
    """ISO alpha-2 code; accepts alpha-2, alpha-3 or a country name."""

    name = "country"
    table = "dim_country"
    key_column = "country_id"
    natural_key_fields = ("iso_code",)
    columns = ("iso_code", "country_name")
    conflict_fields = ("country_name",)

    CODE_FIELDS = ("country", "recipient_country_code", "country_code", "iso_code", "iso3")
    NAME_FIELDS = ("country_name", "recipient_country_name")

    def normalize(self, bundle):
        code = get_text(bundle, *self.CODE_FIELDS)
        supplied_name = get_text(bundle, *self.NAME_FIELDS)

        if code is not None:
            iso = self._iso_from_code(code)
        elif supplied_name is not None:
            iso = self.lookups.country_for_alias(supplied_name)
            if iso is None:
                raise NormalizationError(
                    f"cannot derive ISO code from country name {supplied_name!r}",
                    field="country_name",
                )
        else:
            raise MissingFieldError("country is required", field="country")

        name = self.lookups.country_names.get(iso)
        if name is None:
            if supplied_name is None:
                raise NormalizationError(
                    f"unknown country code {iso!r} and no country_name supplied",
                    field="country",
                )
            name = supplied_name
        return (iso,), {"country_name": name}

    def source_variants(self, bundle, natural_key, attributes):
        supplied_name = get_text(bundle, *self.NAME_FIELDS)
        iso = natural_key[0]
        if supplied_name is None or iso not in self.lookups.country_names:
            return {}
        if self.lookups.country_for_alias(supplied_name) == iso:
            return {}
        return {"country_name": supplied_name}

    def _iso_from_code(self, code: str) -> str:
        upper = code.upper()
        if upper in self.lookups.country_names:
            return upper
        iso = self.lookups.country_for_alias(code)
        if iso is not None:
            return iso
        if len(upper) == 2 and upper.isalpha():
            return upper
        raise NormalizationError(f"unknown country {code!r}", field="country")


# -------------------------------------------------------------------
# Coded dimensions: sector, aid type, transaction type
# -------------------------------------------------------------------


class CodedDimensionBuilder(DimensionBuilder):
    """Code + name dimension backed by a canonical code list.

    Known codes take the canonical name, and a differing source name is
    logged as a conflict; codes outside the list need a source-supplied name. A bundle with neither code nor name maps to the
    reserved UNSPECIFIED member.
    """

    code_fields: tuple[str, ...] = ()
    name_fields: tuple[str, ...] = ()
    name_column: str = ""

    def code_table(self) -> dict[str, str]:
        raise NotImplementedError

    def code_aliases(self) -> dict[str, str]:
        return {}

    def __init__(self, resolver, lookups=None, conflicts=None):
        super().__init__(resolver, lookups, conflicts)
        self._code_by_name = {v.casefold(): k for k, v in self.code_table().items()}

    def resolve_code(self, bundle) -> tuple[str, str]:
        code = get_text(bundle, *self.code_fields)
        supplied_name = get_text(bundle, *self.name_fields)

        if code is None:
            if supplied_name is None:
                return UNSPECIFIED_CODE, UNSPECIFIED_NAME
            code = self._code_by_name.get(supplied_name.casefold())
            if code is None:
                raise NormalizationError(
                    f"no {self.name} code for name {supplied_name!r}", field=self.name_fields[0]
                )
        else:
            code = code.upper()
            code = self.code_aliases().get(code, code)
            if not code.replace(".", "").replace("-", "").isalnum():
                raise NormalizationError(f"malformed {self.name} code {code!r}", field=self.code_fields[0])

        name = self.code_table().get(code)
        if name is None:
            if code == UNSPECIFIED_CODE:
                name = UNSPECIFIED_NAME
            elif supplied_name is None:
                raise NormalizationError(
                    f"unknown {self.name} code {code!r} and no name supplied",
                    field=self.code_fields[0],
                )
            else:
                name = supplied_name
        return code, name

    def normalize(self, bundle):
        code, name = self.resolve_code(bundle)
        return (code,), {self.name_column: name}

    def source_variants(self, bundle, natural_key, attributes):
        supplied_name = get_text(bundle, *self.name_fields)
        canonical = self.code_table().get(natural_key[0])
        if supplied_name is None or canonical is None:
            return {}
        if supplied_name.casefold() == canonical.casefold():
            return {}
        return {self.name_column: supplied_name}


class SectorDimensionBuilder(CodedDimensionBuilder):
    name = "sector"
    table = "dim_sector"
    key_column = "sector_id"
    natural_key_fields = ("sector_code",)
    columns = ("sector_code", "sector_name", "category")
    conflict_fields = ("sector_name",)

    code_fields = ("sector_code", "sector")
    name_fields = ("sector_name",)
    name_column = "sector_name"

    def code_table(self):
        return self.lookups.sector_names

    def normalize(self, bundle):
        code, name = self.resolve_code(bundle)
        if code == UNSPECIFIED_CODE:
            category = UNCATEGORIZED
        else:
            category = self.lookups.sector_category(code)
        return (code,), {"sector_name": name, "category": category}


class AidTypeDimensionBuilder(CodedDimensionBuilder):
    name = "aid_type"
    table = "dim_aid_type"
    key_column = "aid_type_id"
    natural_key_fields = ("aid_type_code",)
    columns = ("aid_type_code", "aid_type_name")
    conflict_fields = ("aid_type_name",)

    code_fields = ("aid_type_code", "aid_type")
    name_fields = ("aid_type_name",)
    name_column = "aid_type_name"

    def code_table(self):
        return self.lookups.aid_types


class TransactionTypeDimensionBuilder(CodedDimensionBuilder):
    name = "transaction_type"
    table = "dim_transaction_type"
    key_column = "transaction_type_id"
    natural_key_fields = ("code",)
    columns = ("code", "name")
    conflict_fields = ("name",)

    code_fields = ("transaction_type_code", "transaction_type")
    name_fields = ("transaction_type_name",)
    name_column = "name"

    def code_table(self):
        return self.lookups.transaction_types

    def code_aliases(self):
        return self.lookups.transaction_type_aliases


# -------------------------------------------------------------------
# Organization
# -------------------------------------------------------------------


def normalize_org_name(name: str) -> str:
    return " ".join(name.split()).casefold()


class OrganizationDimensionBuilder(DimensionBuilder):
    """Reporting organization keyed on (normalized name, organization type)."""

    name = "organization"
    table = "dim_organization"
    key_column = "org_id"
    natural_key_fields = ("org_key", "org_type")
    columns = ("org_name", "org_type", "role")
    conflict_fields = ("org_name", "role")

    NAME_FIELDS = ("reporting_org", "reporting_org_name", "org_name")
    TYPE_FIELDS = ("reporting_org_type", "org_type")
    ROLE_FIELDS = ("reporting_org_role", "org_role", "role")

    def __init__(self, resolver, lookups=None, conflicts=None):
        super().__init__(resolver, lookups, conflicts)
        self._type_by_name = {v.casefold(): v for v in self.lookups.org_types.values()}

    def normalize(self, bundle):
        org_name = get_text(bundle, *self.NAME_FIELDS)
        raw_type = get_text(bundle, *self.TYPE_FIELDS)
        raw_role = get_text(bundle, *self.ROLE_FIELDS)

        if org_name is None:
            if raw_type is not None:
                raise NormalizationError(
                    "reporting_org_type given without reporting_org", field="reporting_org"
                )
            org_name = UNSPECIFIED_NAME

        org_type = self._org_type(raw_type)
        role = self._role(raw_role)
        natural_key = (normalize_org_name(org_name), org_type)
        return natural_key, {"org_name": org_name, "role": role}

    def _org_type(self, raw_type: str | None) -> str:
        if raw_type is None:
            return UNSPECIFIED_NAME
        if raw_type in self.lookups.org_types:
            return self.lookups.org_types[raw_type]
        if raw_type.isdigit():
            raise NormalizationError(f"unknown organisation type code {raw_type!r}", field="reporting_org_type")
        return self._type_by_name.get(raw_type.casefold(), raw_type)

    def _role(self, raw_role: str | None) -> str:
        if raw_role is None:
            return UNSPECIFIED_NAME
        return self.lookups.org_roles.get(raw_role.casefold(), raw_role.title())


def default_builders(
    resolver: KeyResolver,
    lookups: Lookups | None = None,
    conflicts: ConflictLog | None = None,
    min_year: int = 1900,
    max_year: int = 2100,
) -> dict[str, DimensionBuilder]:
    """One builder per dimension, sharing a resolver, lookups and conflict log."""
    lookups = lookups or Lookups.default()
    conflicts = conflicts if conflicts is not None else ConflictLog()
    builders: list[DimensionBuilder] = [
        TimeDimensionBuilder(resolver, lookups, conflicts, min_year=min_year, max_year=max_year),
        CountryDimensionBuilder(resolver, lookups, conflicts),
        SectorDimensionBuilder(resolver, lookups, conflicts),
        OrganizationDimensionBuilder(resolver, lookups, conflicts),
        AidTypeDimensionBuilder(resolver, lookups, conflicts),
        TransactionTypeDimensionBuilder(resolver, lookups, conflicts),
    ]
    return {b.name: b for b in builders}
