import json

import pandas as pd

from aid_warehouse.etl.loaders.table_writer import read_key_map_from_csv, write_tables_to_csv
from aid_warehouse.etl.pipeline import WarehouseBuild


def test_writes_every_table_with_declared_column_order(tmp_path, sample_transactions, sample_observations):
    result = WarehouseBuild().run(transactions=sample_transactions, observations=sample_observations)
    written = write_tables_to_csv(result, tmp_path / "out")

    for table, columns in result.columns.items():
        df = pd.read_csv(written[table], dtype=str, keep_default_na=False)
        assert list(df.columns) == list(columns)
        assert len(df) == len(result.tables[table])

    countries = pd.read_csv(written["dim_country"], dtype=str, keep_default_na=False)
    assert "NA" in set(countries["iso_code"])


def test_writes_rejections_conflicts_and_summary(tmp_path, sample_transactions, sample_observations):
    result = WarehouseBuild().run(transactions=sample_transactions, observations=sample_observations)
    written = write_tables_to_csv(result, tmp_path)

    rejections = pd.read_csv(written["rejections"])
    assert list(rejections.columns) == ["table", "record_id", "dimension", "reason", "source"]
    assert sorted(rejections["record_id"]) == ["Atlantis:2021", "BAD-1", "KE-1-001"]

    conflicts = pd.read_csv(written["conflicts"])
    assert list(conflicts.columns) == ["dimension", "natural_key", "field", "kept", "ignored"]
    assert conflicts.empty

    with open(written["summary"], encoding="utf-8") as f:
        summary = json.load(f)
    assert summary["status"] == "success"
    assert summary["tables"]["fact_aid_transaction"]["rejected"] == 2


def test_conflict_natural_keys_are_flattened(tmp_path, make_transaction):
    result = WarehouseBuild().run(transactions=[
        make_transaction("T1", reporting_org="UNICEF", reporting_org_type="40", reporting_org_role="funding"),
        make_transaction("T2", reporting_org="UNICEF", reporting_org_type="40", reporting_org_role="implementing"),
    ])
    written = write_tables_to_csv(result, tmp_path)

    conflicts = pd.read_csv(written["conflicts"], dtype=str)
    assert conflicts.to_dict(orient="records") == [{
        "dimension": "organization",
        "natural_key": "unicef|Multilateral",
        "field": "role",
        "kept": "Funder",
        "ignored": "Implementer",
    }]


def test_key_map_round_trip(tmp_path, sample_transactions, sample_observations):
    first = WarehouseBuild().run(transactions=sample_transactions, observations=sample_observations)
    write_tables_to_csv(first, tmp_path)

    build = WarehouseBuild()
    key_map = read_key_map_from_csv(tmp_path)
    assert set(key_map) == set(build.builders)
    build.seed_keys(key_map)
    second = build.run(
        transactions=list(reversed(sample_transactions)),
        observations=list(reversed(sample_observations)),
    )

    for table in ("dim_time", "dim_country", "dim_sector", "dim_organization", "dim_aid_type", "dim_transaction_type"):
        assert sorted(map(repr, second.tables[table])) == sorted(map(repr, first.tables[table]))


def test_key_map_missing_file_seeds_nothing(tmp_path):
    assert read_key_map_from_csv(tmp_path) == {}


def _csv_seeded_run(output_dir, transactions):
    build = WarehouseBuild()
    build.seed_keys(read_key_map_from_csv(output_dir))
    result = build.run(transactions=transactions)
    write_tables_to_csv(result, output_dir)
    return {r["iso_code"]: r["country_id"] for r in result.tables["dim_country"]}


def test_keys_survive_a_run_that_does_not_see_them(tmp_path, make_transaction):
    first = _csv_seeded_run(tmp_path, [make_transaction("T1", country="AF"), make_transaction("T2", country="KE")])
    second = _csv_seeded_run(tmp_path, [make_transaction("T3", country="KE")])
    third = _csv_seeded_run(tmp_path, [make_transaction("T4", country="GH"), make_transaction("T5", country="AF")])

    assert first == {"AF": 1, "KE": 2}
    assert second == {"KE": 2}
    assert third == {"AF": 1, "GH": 3}


def test_key_map_file_keeps_integer_natural_keys(tmp_path, make_transaction):
    result = WarehouseBuild().run(transactions=[make_transaction("T1", date="1999-08-15")])
    written = write_tables_to_csv(result, tmp_path)

    key_map_df = pd.read_csv(written["key_map"], dtype=str)
    assert list(key_map_df.columns) == ["dimension", "surrogate_key", "natural_key"]
    assert read_key_map_from_csv(tmp_path)["time"] == [((1999, 3), 1)]
