"""Mirror the finished star schema into the reporting database."""

import logging

from sqlalchemy import delete, insert
from sqlalchemy.orm import Session

from aid_warehouse.etl.pipeline import BuildResult
from aid_warehouse.models.reporting import DIMENSION_MODELS, FACT_MODELS

logger = logging.getLogger(__name__)

CONTEXT_COLUMNS = ("country_id", "time_id", "population", "gdp_per_capita")


def _context_row(record: dict) -> dict:
    row = {c: record.get(c) for c in CONTEXT_COLUMNS}
    extras = {k: v for k, v in record.items() if k not in CONTEXT_COLUMNS}
    row["indicators"] = extras or None
    return row


def load_star_schema(reporting_session: Session, result: BuildResult, batch_size: int = 5000) -> dict[str, int]:
    """Replace the reporting tables with the rows of one build.

    Facts are cleared before dimensions and dimensions are loaded before
    facts, so foreign keys hold at every step. The caller owns the commit.

    Returns:
        Rows loaded per table
    """
    for model in FACT_MODELS.values():
        reporting_session.execute(delete(model))
    for model in DIMENSION_MODELS.values():
        reporting_session.execute(delete(model))

    loaded = {}
    for table_name, model in list(DIMENSION_MODELS.items()) + list(FACT_MODELS.items()):
        rows = result.tables.get(table_name, [])
        if table_name == "fact_country_context":
            rows = [_context_row(r) for r in rows]
        for start in range(0, len(rows), batch_size):
            reporting_session.execute(insert(model), rows[start:start + batch_size])
        loaded[table_name] = len(rows)
        logger.info("loaded %d rows into %s", len(rows), table_name)

    reporting_session.flush()
    return loaded
