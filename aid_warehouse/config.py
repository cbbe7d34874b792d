from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Reporting DB (read-write, optional mirror of the star schema)
    reporting_db_host: str = "localhost"
    reporting_db_port: int = 5432
    reporting_db_name: str = "aid_warehouse"
    reporting_db_schema: str = "rpt"
    reporting_db_user: str = "reporting_user"
    reporting_db_password: SecretStr = SecretStr("changeme")
    # Full SQLAlchemy URL; takes precedence over the host/port/name fields
    reporting_db_url: str | None = None

    # ETL
    etl_batch_size: int = 5000
    etl_log_level: str = "info"
    etl_parallel: bool = False
    etl_min_year: int = 1900
    etl_max_year: int = 2100

    # Inputs / outputs
    transactions_path: str = "data/raw/transactions.csv"
    observations_path: str = "data/raw/country_indicators.csv"
    observations_long_format: bool = False
    output_dir: str = "data/star_schema"
    country_lookup_path: str | None = None

    # fact_country_context columns after population, gdp_per_capita
    context_extra_indicators: list[str] = []

    # Where surrogate keys are seeded from before a build
    key_state_backend: Literal["none", "csv", "db"] = "none"
    write_to_db: bool = False

    @property
    def reporting_db_url_sync(self) -> str:
        if self.reporting_db_url:
            return self.reporting_db_url
        pwd = self.reporting_db_password.get_secret_value()
        return (
            f"postgresql+psycopg2://{self.reporting_db_user}:{pwd}"
            f"@{self.reporting_db_host}:{self.reporting_db_port}"
            f"/{self.reporting_db_name}"
        )

    @property
    def context_indicators(self) -> tuple[str, ...]:
        base = ("population", "gdp_per_capita")
        extras = tuple(i for i in self.context_extra_indicators if i not in base)
        return base + extras


settings = Settings()
