"""SQLAlchemy ORM models for the aid star schema.

Tables are declared without a schema; the reporting engine maps them into
the configured Postgres schema ('rpt' by default). The delimited-file
output is the binding contract; these tables mirror it for SQL consumers.
fact_country_context keeps population and gdp_per_capita as columns and
any further indicators in a JSON column.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

RPT_SCHEMA = "rpt"


class ReportingBase(DeclarativeBase):
    pass


# ===================================================================
# DIMENSION TABLES
# ===================================================================


class DimTime(ReportingBase):
    __tablename__ = "dim_time"
    __table_args__ = (UniqueConstraint("year", "quarter", name="uq_dim_time_year_quarter"),)

    time_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    year: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    quarter: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 0 = annual


class DimCountry(ReportingBase):
    __tablename__ = "dim_country"

    country_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    iso_code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    country_name: Mapped[str] = mapped_column(String(255), nullable=False)


class DimSector(ReportingBase):
    __tablename__ = "dim_sector"

    sector_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    sector_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    sector_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False)


class DimOrganization(ReportingBase):
    __tablename__ = "dim_organization"

    org_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    org_name: Mapped[str] = mapped_column(String(500), nullable=False)
    org_type: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)


class DimAidType(ReportingBase):
    __tablename__ = "dim_aid_type"

    aid_type_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    aid_type_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    aid_type_name: Mapped[str] = mapped_column(String(255), nullable=False)


class DimTransactionType(ReportingBase):
    __tablename__ = "dim_transaction_type"

    transaction_type_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


# ===================================================================
# FACT TABLES
# ===================================================================


class FactAidTransaction(ReportingBase):
    __tablename__ = "fact_aid_transaction"

    iati_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    value_usd: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    humanitarian: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    country_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_country.country_id"), nullable=False
    )
    time_id: Mapped[int] = mapped_column(Integer, ForeignKey("dim_time.time_id"), nullable=False)
    sector_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_sector.sector_id"), nullable=False
    )
    reporting_org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_organization.org_id"), nullable=False
    )
    aid_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_aid_type.aid_type_id"), nullable=False
    )
    transaction_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_transaction_type.transaction_type_id"), nullable=False
    )


class FactCountryContext(ReportingBase):
    __tablename__ = "fact_country_context"

    country_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_country.country_id"), primary_key=True
    )
    time_id: Mapped[int] = mapped_column(Integer, ForeignKey("dim_time.time_id"), primary_key=True)
    population: Mapped[float | None] = mapped_column(Float, nullable=True)
    gdp_per_capita: Mapped[float | None] = mapped_column(Float, nullable=True)
    indicators: Mapped[dict | None] = mapped_column(JSON, nullable=True)


# ===================================================================
# ETL STATE
# ===================================================================


class EtlKeyMap(ReportingBase):
    __tablename__ = "etl_key_map"

    dimension: Mapped[str] = mapped_column(String(50), primary_key=True)
    surrogate_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    natural_key: Mapped[list] = mapped_column(JSON, nullable=False)


class EtlBuildLog(ReportingBase):
    __tablename__ = "etl_build_log"

    build_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    records_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_loaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_rejected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conflicts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


DIMENSION_MODELS = {
    "dim_time": DimTime,
    "dim_country": DimCountry,
    "dim_sector": DimSector,
    "dim_organization": DimOrganization,
    "dim_aid_type": DimAidType,
    "dim_transaction_type": DimTransactionType,
}

FACT_MODELS = {
    "fact_aid_transaction": FactAidTransaction,
    "fact_country_context": FactCountryContext,
}
