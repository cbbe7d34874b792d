"""Write the finished star schema as delimited files.

Column order follows BuildResult.columns, which is the contract downstream
queries rely on. Rejection and conflict logs, the full surrogate key map
and the build summary are written next to the tables.
"""

import json
import logging
from pathlib import Path

import pandas as pd

from aid_warehouse.etl.build_log import BuildSummary
from aid_warehouse.etl.keys import KeyResolver, NaturalKey
from aid_warehouse.etl.pipeline import BuildResult

logger = logging.getLogger(__name__)

REJECTION_COLUMNS = ["table", "record_id", "dimension", "reason", "source"]
CONFLICT_COLUMNS = ["dimension", "natural_key", "field", "kept", "ignored"]
KEY_MAP_COLUMNS = ["dimension", "surrogate_key", "natural_key"]
KEY_MAP_FILE = "key_map.csv"


def write_tables_to_csv(result: BuildResult, output_dir: str | Path) -> dict[str, Path]:
    """Save every table plus rejections.csv, conflicts.csv and key_map.csv.

    Returns:
        Mapping of table name to the file written
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    written = {}

    for table_name, rows in result.tables.items():
        df = pd.DataFrame(rows, columns=list(result.columns[table_name]))
        file_path = output_path / f"{table_name}.csv"
        df.to_csv(file_path, index=False)
        written[table_name] = file_path
        logger.info("saved %s to %s (%d rows)", table_name, file_path, len(df))

    rejections = pd.DataFrame(result.rejections.records(), columns=REJECTION_COLUMNS)
    written["rejections"] = output_path / "rejections.csv"
    rejections.to_csv(written["rejections"], index=False)

    conflicts = pd.DataFrame(result.conflicts.records(), columns=CONFLICT_COLUMNS)
    if not conflicts.empty:
        conflicts["natural_key"] = conflicts["natural_key"].map(lambda k: "|".join(map(str, k)))
    written["conflicts"] = output_path / "conflicts.csv"
    conflicts.to_csv(written["conflicts"], index=False)

    written["key_map"] = write_key_map(result.resolver, output_path / KEY_MAP_FILE)
    written["summary"] = write_summary(result.summary, output_path / "build_summary.json")
    return written


def write_summary(summary: BuildSummary, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary.to_dict(), f, indent=2, default=str)
    return path


def write_key_map(resolver: KeyResolver, path: str | Path) -> Path:
    """Save every (dimension, surrogate_key, natural_key) mapping the resolver holds.

    Natural keys are JSON arrays so integer parts (time) survive the round trip.
    """
    path = Path(path)
    rows = [
        {"dimension": dimension, "surrogate_key": key, "natural_key": json.dumps(list(natural_key))}
        for dimension, pairs in resolver.snapshot().items()
        for natural_key, key in pairs
    ]
    pd.DataFrame(rows, columns=KEY_MAP_COLUMNS).to_csv(path, index=False)
    logger.info("saved %d key mappings to %s", len(rows), path)
    return path


def read_key_map_from_csv(output_dir: str | Path) -> dict[str, list[tuple[NaturalKey, int]]]:
    """Recover the full key map a previous run saved in key_map.csv.

    A missing file seeds nothing, so a first run starts from key 1.
    """
    file_path = Path(output_dir) / KEY_MAP_FILE
    if not file_path.exists():
        return {}
    df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    key_map: dict[str, list[tuple[NaturalKey, int]]] = {}
    for record in df.to_dict(orient="records"):
        key_map.setdefault(record["dimension"], []).append(
            (tuple(json.loads(record["natural_key"])), int(record["surrogate_key"]))
        )
    logger.debug("read %d persisted keys from %s", len(df), file_path)
    return key_map
