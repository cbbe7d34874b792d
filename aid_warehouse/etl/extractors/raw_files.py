"""Read raw transaction and indicator extracts as lazy, restartable record streams."""

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

import pandas as pd

from aid_warehouse.etl.transformers.fields import get_raw, get_text

logger = logging.getLogger(__name__)


def _chunk_records(chunk: pd.DataFrame) -> list[dict[str, Any]]:
    chunk = chunk.astype(object).where(chunk.notna(), None)
    return chunk.to_dict(orient="records")


class RawRecordSource:
    """Iterate a CSV / JSON-lines / JSON extract one raw bundle at a time.

    Every iteration re-opens the file, so the source can be scanned again
    after a failed or aborted pass. CSV columns are read as strings; only
    empty cells count as missing (``NA`` is Namibia, not a null).
    """

    def __init__(self, path: str | Path, batch_size: int = 5000, fmt: str | None = None):
        self.path = Path(path)
        self.batch_size = batch_size
        self.fmt = fmt or self._detect_format(self.path)

    @staticmethod
    def _detect_format(path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix in (".jsonl", ".ndjson"):
            return "jsonl"
        if suffix == ".json":
            return "json"
        return "csv"

    def batches(self) -> Iterator[list[dict[str, Any]]]:
        if not self.path.exists():
            raise FileNotFoundError(f"Raw extract not found: {self.path}")

        if self.fmt == "csv":
            reader = pd.read_csv(
                self.path,
                chunksize=self.batch_size,
                dtype=str,
                keep_default_na=False,
                na_values=[""],
            )
            with reader:
                for chunk in reader:
                    yield _chunk_records(chunk)
        elif self.fmt == "jsonl":
            reader = pd.read_json(self.path, lines=True, chunksize=self.batch_size, dtype=False)
            with reader:
                for chunk in reader:
                    yield _chunk_records(chunk)
        elif self.fmt == "json":
            frame = pd.read_json(self.path, dtype=False)
            for start in range(0, len(frame), self.batch_size):
                yield _chunk_records(frame.iloc[start:start + self.batch_size])
        else:
            raise ValueError(f"Unsupported extract format: {self.fmt}")

    def __iter__(self) -> Iterator[dict[str, Any]]:
        total = 0
        for batch in self.batches():
            total += len(batch)
            yield from batch
        logger.debug("read %d records from %s", total, self.path)


class LongIndicatorSource:
    """Pivot a long indicator extract into one bundle per (country, year).

    Input rows carry ``country`` (or ``country_code`` / ``iso3``), ``year``,
    an indicator code or column name (``indicator_code`` / ``indicator``) and
    ``value``. Known WDI codes are renamed to their fact column; rows for
    indicators outside ``columns`` are skipped. Output keeps the order in
    which each (country, year) was first seen, and a repeated indicator value
    for the same key keeps the last one read.
    """

    COUNTRY_FIELDS = ("country", "country_code", "iso3", "iso_code")

    def __init__(
        self,
        source: Iterable[Mapping[str, Any]],
        columns: tuple[str, ...],
        indicator_codes: Mapping[str, str] | None = None,
    ):
        self.source = source
        self.columns = tuple(columns)
        self.indicator_codes = dict(indicator_codes or {})

    def _column_for(self, indicator: str) -> str | None:
        column = self.indicator_codes.get(indicator.upper(), indicator)
        return column if column in self.columns else None

    def __iter__(self) -> Iterator[dict[str, Any]]:
        grouped: dict[tuple, dict[str, Any]] = {}
        skipped: set[str] = set()
        for row in self.source:
            country = get_text(row, *self.COUNTRY_FIELDS)
            year = get_text(row, "year")
            indicator = get_text(row, "indicator_code", "indicator")
            key = (country, year)
            bundle = grouped.get(key)
            if bundle is None:
                bundle = {"country": country, "year": year}
                if get_text(row, "country_name"):
                    bundle["country_name"] = get_text(row, "country_name")
                grouped[key] = bundle
            if indicator is None:
                continue
            column = self._column_for(indicator)
            if column is None:
                skipped.add(indicator)
                continue
            bundle[column] = get_raw(row, "value")
        if skipped:
            logger.info("skipped %d indicators without a fact column: %s", len(skipped), sorted(skipped))
        yield from grouped.values()
