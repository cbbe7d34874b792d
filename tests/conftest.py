import pytest

from aid_warehouse.etl.build_log import ConflictLog, RejectionLog
from aid_warehouse.etl.keys import KeyResolver
from aid_warehouse.etl.lookups import Lookups
from aid_warehouse.etl.transformers.dimensions import default_builders


@pytest.fixture
def resolver() -> KeyResolver:
    return KeyResolver()


@pytest.fixture
def lookups() -> Lookups:
    return Lookups.default()


@pytest.fixture
def conflicts() -> ConflictLog:
    return ConflictLog()


@pytest.fixture
def rejections() -> RejectionLog:
    return RejectionLog()


@pytest.fixture
def builders(resolver, lookups, conflicts):
    return default_builders(resolver, lookups, conflicts)


@pytest.fixture
def make_transaction():
    """Factory for a fully populated raw transaction; keyword args override fields."""

    def _make(iati_id: str = "T1", **fields) -> dict:
        record = {
            "iati_id": iati_id,
            "country": "KE",
            "value_usd": "1000",
            "date": "2021-05-10",
            "sector_code": "12220",
            "reporting_org": "Example Development Agency",
            "reporting_org_type": "10",
            "reporting_org_role": "funding",
            "aid_type": "C01",
            "transaction_type": "3",
            "humanitarian": "0",
        }
        record.update(fields)
        return record

    return _make


@pytest.fixture
def sample_transactions(make_transaction) -> list[dict]:
    return [
        make_transaction("KE-1-001"),
        make_transaction("KE-1-002", value_usd="2500.50", date="2021-11-03", sector_code="72040", humanitarian="yes"),
        make_transaction("ET-9-001", country="ETH", date="1999-08-15", aid_type="B02", transaction_type="2"),
        make_transaction(
            "NA-3-001",
            country="NA",
            reporting_org="UNICEF",
            reporting_org_type="40",
            reporting_org_role="implementing",
            sector_code="11220",
        ),
        make_transaction("KE-1-001", value_usd="999"),
        make_transaction("BAD-1", value_usd="lots"),
    ]


@pytest.fixture
def sample_observations() -> list[dict]:
    return [
        {"country": "KEN", "year": "2021", "population": "53005614", "gdp_per_capita": "2081.8"},
        {"country": "ET", "year": "1999", "population": "", "gdp_per_capita": "124.5"},
        {"country": "NA", "year": "2021", "population": "2530151", "gdp_per_capita": "4729.3"},
        {"country": "KE", "year": "2021", "population": "53005614", "gdp_per_capita": "2099.3"},
        {"country": "Atlantis", "year": "2021", "population": "1"},
    ]
