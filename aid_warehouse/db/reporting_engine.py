"""Sync engine for the reporting database.

Used by the ETL for the optional SQL mirror of the star schema, the
persisted key map and the build log, and by Alembic migrations.
"""

from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from aid_warehouse.config import settings


def create_reporting_engine(url: str | None = None, schema: str | None = None) -> Engine:
    url = url or settings.reporting_db_url_sync
    if url.startswith("sqlite"):
        return create_engine(url, echo=False)
    schema = schema or settings.reporting_db_schema
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        execution_options={"schema_translate_map": {None: schema}},
    )


@lru_cache(maxsize=1)
def get_reporting_sync_engine() -> Engine:
    return create_reporting_engine()


def get_reporting_sync_session(engine: Engine | None = None) -> Session:
    ReportingSyncSessionLocal = sessionmaker(
        bind=engine or get_reporting_sync_engine(),
        expire_on_commit=False,
    )
    return ReportingSyncSessionLocal()
