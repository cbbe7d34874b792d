"""Build the aid star schema from the raw extracts.

Usage:
    python scripts/run_warehouse_etl.py                          # Full rebuild from settings paths
    python scripts/run_warehouse_etl.py --seed-keys csv          # Keep surrogate keys from the last run
    python scripts/run_warehouse_etl.py --long-format            # Indicators as (country, indicator, year, value)
    python scripts/run_warehouse_etl.py --parallel --write-db    # Scan both sources concurrently, mirror to DB

Exits 0 when the build completes (rejected records are reported, not fatal)
and 1 on an integrity violation, printing the build summary as JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from aid_warehouse.config import settings
from aid_warehouse.db.reporting_engine import get_reporting_sync_session
from aid_warehouse.etl.errors import IntegrityViolation
from aid_warehouse.etl.extractors.raw_files import LongIndicatorSource, RawRecordSource
from aid_warehouse.etl.loaders.sql_writer import load_star_schema
from aid_warehouse.etl.loaders.table_writer import (
    read_key_map_from_csv,
    write_summary,
    write_tables_to_csv,
)
from aid_warehouse.etl.pipeline import WarehouseBuild
from aid_warehouse.etl.state import (
    load_key_map,
    mark_build_completed,
    mark_build_started,
    save_key_map,
)


def build_sources(args, build: WarehouseBuild) -> tuple[RawRecordSource, object]:
    transactions = RawRecordSource(args.transactions, batch_size=settings.etl_batch_size)
    observations = RawRecordSource(args.observations, batch_size=settings.etl_batch_size)
    if args.long_format:
        observations = LongIndicatorSource(
            observations,
            columns=settings.context_indicators,
            indicator_codes=build.lookups.indicator_codes,
        )
    return transactions, observations


def run_build(args) -> int:
    print("🔄 Starting aid warehouse build...")
    build = WarehouseBuild.from_settings(settings)

    reporting_session = None
    build_id = None
    if args.seed_keys == "db" or args.write_db:
        reporting_session = get_reporting_sync_session()

    try:
        if args.seed_keys == "csv":
            print(f"🔑 Seeding surrogate keys from {args.output_dir}...")
            build.seed_keys(read_key_map_from_csv(args.output_dir))
        elif args.seed_keys == "db":
            print("🔑 Seeding surrogate keys from etl_key_map...")
            build.seed_keys(load_key_map(reporting_session))

        if reporting_session is not None and args.write_db:
            build_id = mark_build_started(reporting_session)
            reporting_session.commit()

        transactions, observations = build_sources(args, build)
        print(f"📤 Reading transactions from {args.transactions}")
        print(f"📤 Reading indicators from {args.observations}")

        try:
            result = build.run(
                transactions=transactions,
                observations=observations,
                parallel=args.parallel,
            )
        except IntegrityViolation as e:
            print(f"❌ Integrity check failed: {e}")
            write_summary(e.summary, Path(args.output_dir) / "build_summary.json")
            print(json.dumps(e.summary.to_dict(), indent=2, default=str))
            if build_id is not None:
                mark_build_completed(reporting_session, build_id, e.summary)
                reporting_session.commit()
            return 1

        print("📥 Writing star schema files...")
        written = write_tables_to_csv(result, args.output_dir)
        print(f"   ✅ Wrote {len(written)} files to {args.output_dir}")

        if reporting_session is not None and args.write_db:
            print("📥 Loading star schema into reporting DB...")
            loaded = load_star_schema(reporting_session, result, batch_size=settings.etl_batch_size)
            save_key_map(reporting_session, result.resolver)
            mark_build_completed(reporting_session, build_id, result.summary)
            reporting_session.commit()
            print(f"   ✅ Loaded {sum(loaded.values())} rows")
        elif reporting_session is not None:
            save_key_map(reporting_session, result.resolver)
            reporting_session.commit()

        print(json.dumps(result.summary.to_dict(), indent=2, default=str))
        print("✅ Aid warehouse build completed successfully!")
        return 0

    except Exception:
        if reporting_session is not None:
            reporting_session.rollback()
        raise

    finally:
        if reporting_session is not None:
            reporting_session.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build the aid star schema")
    parser.add_argument("--transactions", default=settings.transactions_path, help="Raw transaction extract")
    parser.add_argument("--observations", default=settings.observations_path, help="Raw indicator extract")
    parser.add_argument("--output-dir", default=settings.output_dir, help="Directory for the table files")
    parser.add_argument(
        "--long-format",
        action="store_true",
        default=settings.observations_long_format,
        help="Indicator extract has one row per (country, indicator, year)",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        default=settings.etl_parallel,
        help="Scan both extracts concurrently",
    )
    parser.add_argument(
        "--seed-keys",
        choices=["none", "csv", "db"],
        default=settings.key_state_backend,
        help="Seed surrogate keys from the previous run",
    )
    parser.add_argument(
        "--write-db",
        action="store_true",
        default=settings.write_to_db,
        help="Also load the tables into the reporting database",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.etl_log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run_build(args)


if __name__ == "__main__":
    sys.exit(main())
