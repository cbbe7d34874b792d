import logging

import pytest

from aid_warehouse.etl.build_log import Rejection
from aid_warehouse.etl.lookups import UNSPECIFIED_CODE
from aid_warehouse.etl.transformers.facts import (
    AidTransactionAssembler,
    AidTransactionFact,
    CountryContextAssembler,
    CountryContextFact,
)


@pytest.fixture
def transactions(builders, rejections):
    return AidTransactionAssembler(builders, rejections)


@pytest.fixture
def context(builders, rejections):
    return CountryContextAssembler(builders, ("population", "gdp_per_capita"), rejections)


# -------------------------------------------------------------------
# fact_aid_transaction
# -------------------------------------------------------------------


def test_transaction_fact_resolves_every_dimension(transactions, make_transaction):
    fact = transactions.assemble(make_transaction("T1"))
    assert isinstance(fact, AidTransactionFact)
    assert fact.as_record() == {
        "iati_id": "T1",
        "value_usd": 1000.0,
        "humanitarian": False,
        "country_id": 1,
        "time_id": 1,
        "sector_id": 1,
        "reporting_org_id": 1,
        "aid_type_id": 1,
        "transaction_type_id": 1,
    }


def test_duplicate_iati_id_keeps_first(transactions, rejections, make_transaction):
    transactions.assemble(make_transaction("T1", value_usd="100"))
    duplicate = transactions.assemble(make_transaction("T1", value_usd="999"))

    assert isinstance(duplicate, Rejection)
    assert "duplicate" in duplicate.reason
    assert [f.value_usd for f in transactions.facts()] == [100.0]
    assert rejections.count("fact_aid_transaction") == 1


def test_rejected_record_leaves_no_dimension_rows(transactions, builders, make_transaction):
    rejection = transactions.assemble(make_transaction("T1", country="ET", sector_code="88888"))

    assert isinstance(rejection, Rejection)
    assert rejection.dimension == "sector"
    assert rejection.source == "transactions"
    for builder in builders.values():
        assert len(builder) == 0


def test_rejected_record_logs_no_name_conflict(transactions, conflicts, make_transaction):
    transactions.assemble(make_transaction("T1", country="AF", country_name="Bananaland", sector_code="88888"))
    assert len(conflicts) == 0

    transactions.assemble(make_transaction("T2", country="AF", country_name="Bananaland"))
    assert [c.ignored for c in conflicts.entries] == ["Bananaland"]


def test_missing_iati_id_is_rejected_with_position(transactions, make_transaction):
    transactions.assemble(make_transaction("T1"))
    rejection = transactions.assemble(make_transaction(""))
    assert rejection.record_id == "<record 2>"
    assert "iati_id" in rejection.reason


@pytest.mark.parametrize("value", ["", "lots", "inf", "nan"])
def test_unusable_value_is_rejected(transactions, make_transaction, value):
    assert isinstance(transactions.assemble(make_transaction("T1", value_usd=value)), Rejection)


def test_value_with_thousands_separator(transactions, make_transaction):
    fact = transactions.assemble(make_transaction("T1", value_usd="1,250,000.75"))
    assert fact.value_usd == 1250000.75


def test_missing_date_is_rejected_against_time(transactions, make_transaction):
    rejection = transactions.assemble(make_transaction("T1", date=""))
    assert rejection.dimension == "time"


def test_negative_value_only_for_signed_transaction_types(transactions, make_transaction):
    disbursement = transactions.assemble(make_transaction("T1", value_usd="-50", transaction_type="3"))
    repayment = transactions.assemble(make_transaction("T2", value_usd="-50", transaction_type="6"))
    unspecified = transactions.assemble(make_transaction("T3", value_usd="-50", transaction_type=""))

    assert isinstance(disbursement, Rejection)
    assert repayment.value_usd == -50.0
    assert unspecified.value_usd == -50.0
    tt_codes = [row["code"] for row in transactions.builders["transaction_type"].records()]
    assert tt_codes == ["6", UNSPECIFIED_CODE]


@pytest.mark.parametrize("flag, expected", [("1", True), ("yes", True), ("False", False), (None, False)])
def test_humanitarian_flag(transactions, make_transaction, flag, expected):
    assert transactions.assemble(make_transaction("T1", humanitarian=flag)).humanitarian is expected


def test_humanitarian_flag_unrecognised_is_rejected(transactions, make_transaction):
    assert isinstance(transactions.assemble(make_transaction("T1", humanitarian="maybe")), Rejection)


def test_optional_dimensions_fall_back_to_unspecified(transactions, builders):
    fact = transactions.assemble({"iati_id": "T1", "country": "AF", "value_usd": 100, "date": "2000-01-01"})
    assert isinstance(fact, AidTransactionFact)
    assert builders["sector"].records()[0]["sector_code"] == UNSPECIFIED_CODE
    assert builders["aid_type"].records()[0]["aid_type_code"] == UNSPECIFIED_CODE


# -------------------------------------------------------------------
# fact_country_context
# -------------------------------------------------------------------


def test_context_fact_uses_annual_time_member(context, builders):
    fact = context.assemble({"country": "KEN", "year": "2021", "population": "53005614", "gdp_per_capita": "2081.8"})
    assert isinstance(fact, CountryContextFact)
    assert builders["time"].records() == [{"time_id": 1, "year": 2021, "quarter": 0}]
    assert context.records() == [
        {"country_id": 1, "time_id": 1, "population": 53005614.0, "gdp_per_capita": 2081.8},
    ]


def test_revision_last_observation_wins(context):
    context.assemble({"country": "KE", "year": "2020", "gdp_per_capita": "1000"})
    context.assemble({"country": "ET", "year": "2020", "gdp_per_capita": "500"})
    context.assemble({"country": "KE", "year": "2020", "gdp_per_capita": "1100"})

    records = context.records()
    assert len(records) == 2
    assert records[0]["country_id"] == 1
    assert records[0]["gdp_per_capita"] == 1100.0
    assert context.revisions == 1


def test_sparse_indicators_are_null_not_rejected(context, rejections):
    fact = context.assemble({"country": "ET", "year": "1999", "population": "", "gdp_per_capita": "124.5"})
    assert fact.indicators == {"population": None, "gdp_per_capita": 124.5}
    assert len(rejections) == 0


def test_non_numeric_indicator_is_null_with_warning(context, caplog):
    with caplog.at_level(logging.WARNING):
        fact = context.assemble({"country": "ET", "year": "1999", "population": "about 60m"})
    assert fact.indicators["population"] is None
    assert "not numeric" in caplog.text


def test_context_rejections(context, rejections):
    no_year = context.assemble({"country": "KE", "population": "1"})
    no_country = context.assemble({"country": "Atlantis", "year": "2020"})

    assert no_year.dimension == "time"
    assert no_country.dimension == "country"
    assert no_country.record_id == "Atlantis:2020"
    assert rejections.count("fact_country_context") == 2
    assert context.records() == []


def test_extra_indicator_columns(builders):
    context = CountryContextAssembler(builders, ("population", "gdp_per_capita", "life_expectancy"))
    context.assemble({"country": "KE", "year": "2020", "life_expectancy": "66.7"})
    assert context.columns == ("country_id", "time_id", "population", "gdp_per_capita", "life_expectancy")
    assert context.records()[0]["life_expectancy"] == 66.7
