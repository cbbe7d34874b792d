from datetime import datetime

import pytest

from aid_warehouse.etl.errors import DateParseError, MissingFieldError, NormalizationError
from aid_warehouse.etl.lookups import UNCATEGORIZED, UNSPECIFIED_CODE, UNSPECIFIED_NAME


# -------------------------------------------------------------------
# Time
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw_date, expected",
    [
        ("1999-08-15", (1999, 3)),
        ("2000-01-01", (2000, 1)),
        ("2000-03-31", (2000, 1)),
        ("2000-04-01", (2000, 2)),
        ("2021-12-31T23:59:00", (2021, 4)),
    ],
)
def test_time_quarter_from_date(builders, raw_date, expected):
    member = builders["time"].prepare({"date": raw_date})
    assert member.natural_key == expected


def test_time_accepts_datetime_objects(builders):
    member = builders["time"].prepare({"transaction_date": datetime(2010, 7, 1, 12, 30)})
    assert member.natural_key == (2010, 3)


def test_time_annual_observation_uses_quarter_zero(builders):
    assert builders["time"].prepare({"year": "2015"}).natural_key == (2015, 0)
    assert builders["time"].prepare({"year": "YR2016"}).natural_key == (2016, 0)


def test_time_explicit_quarter(builders):
    assert builders["time"].prepare({"year": 2015, "quarter": "2"}).natural_key == (2015, 2)


@pytest.mark.parametrize(
    "bundle",
    [
        {"date": "not a date"},
        {"date": "2000-13-45"},
        {"date": "1850-01-01"},
        {"year": "20x5"},
        {"year": "2015", "quarter": "5"},
        {"year": "2015", "quarter": "Q2"},
    ],
)
def test_time_unparseable_or_out_of_bounds(builders, bundle):
    with pytest.raises(DateParseError) as exc:
        builders["time"].prepare(bundle)
    assert exc.value.dimension == "time"


def test_time_requires_date_or_year(builders):
    with pytest.raises(MissingFieldError):
        builders["time"].prepare({"country": "KE"})


def test_time_rows(builders):
    builders["time"].ingest({"date": "1999-08-15"})
    builders["time"].ingest({"date": "2000-01-01"})
    builders["time"].ingest({"date": "1999-09-30"})
    assert builders["time"].records() == [
        {"time_id": 1, "year": 1999, "quarter": 3},
        {"time_id": 2, "year": 2000, "quarter": 1},
    ]


# -------------------------------------------------------------------
# Country
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    "bundle",
    [
        {"country": "AF"},
        {"country": "af"},
        {"country": "AFG"},
        {"iso3": "AFG"},
        {"country_name": "Afghanistan"},
        {"country_name": "Islamic Republic of Afghanistan"},
    ],
)
def test_country_resolves_to_alpha2(builders, bundle):
    member = builders["country"].prepare(bundle)
    assert member.natural_key == ("AF",)
    assert member.attributes == {"country_name": "Afghanistan"}


def test_country_na_is_namibia(builders):
    member = builders["country"].prepare({"country": "NA"})
    assert member.natural_key == ("NA",)
    assert member.attributes["country_name"] == "Namibia"


def test_country_known_code_accepts_canonical_name_and_synonyms(builders, conflicts):
    builders["country"].ingest({"country": "BD", "country_name": "Bangladesh"})
    builders["country"].ingest({"country": "BD", "country_name": "People's Republic of Bangladesh"})
    builders["country"].ingest({"country": "BGD", "country_name": "bangladesh"})
    assert builders["country"].records() == [
        {"country_id": 1, "iso_code": "BD", "country_name": "Bangladesh"},
    ]
    assert len(conflicts) == 0


def test_country_known_code_with_different_name_is_a_conflict(builders, conflicts):
    country = builders["country"]
    country.ingest({"country": "AF", "country_name": "Afghanistan"})
    country.ingest({"country": "AF", "country_name": "Bananaland"})
    country.ingest({"country": "AF", "country_name": "Bananaland"})

    assert country.records() == [{"country_id": 1, "iso_code": "AF", "country_name": "Afghanistan"}]
    assert [(c.dimension, c.natural_key, c.field, c.kept, c.ignored) for c in conflicts.entries] == [
        ("country", ("AF",), "country_name", "Afghanistan", "Bananaland"),
    ]


def test_prepare_alone_logs_no_conflict(builders, conflicts):
    member = builders["country"].prepare({"country": "AF", "country_name": "Bananaland"})
    assert member.variants == {"country_name": "Bananaland"}
    assert len(conflicts) == 0


def test_country_unknown_code_needs_a_name(builders):
    with pytest.raises(NormalizationError):
        builders["country"].prepare({"country": "QZ"})
    member = builders["country"].prepare({"country": "QZ", "country_name": "Quenzland"})
    assert member.natural_key == ("QZ",)
    assert member.attributes == {"country_name": "Quenzland"}


def test_country_unknown_alpha3_or_name_is_rejected(builders):
    with pytest.raises(NormalizationError):
        builders["country"].prepare({"country": "QQQ"})
    with pytest.raises(NormalizationError):
        builders["country"].prepare({"country_name": "Atlantis"})


def test_country_missing(builders):
    with pytest.raises(MissingFieldError) as exc:
        builders["country"].prepare({"country": ""})
    assert exc.value.dimension == "country"


def test_country_name_conflict_first_write_wins(builders, conflicts):
    country = builders["country"]
    first = country.ingest({"country": "QZ", "country_name": "Quenzland"})
    second = country.ingest({"country": "QZ", "country_name": "Republic of Quenzland"})
    third = country.ingest({"country": "QZ", "country_name": "Republic of Quenzland"})

    assert first == second == third
    assert country.records() == [{"country_id": 1, "iso_code": "QZ", "country_name": "Quenzland"}]
    assert len(conflicts) == 1
    conflict = conflicts.entries[0]
    assert conflict.dimension == "country"
    assert conflict.natural_key == ("QZ",)
    assert conflict.kept == "Quenzland"
    assert conflict.ignored == "Republic of Quenzland"


# -------------------------------------------------------------------
# Sector
# -------------------------------------------------------------------


def test_sector_known_code(builders):
    member = builders["sector"].prepare({"sector_code": "12220"})
    assert member.natural_key == ("12220",)
    assert member.attributes == {
        "sector_name": "Basic health care",
        "category": "Social Infrastructure & Services",
    }


def test_sector_known_code_with_different_name_is_a_conflict(builders, conflicts):
    sector = builders["sector"]
    sector.ingest({"sector_code": "12220", "sector_name": "basic health care"})
    sector.ingest({"sector_code": "12220", "sector_name": "Primary healthcare"})

    assert sector.records()[0]["sector_name"] == "Basic health care"
    assert [(c.field, c.kept, c.ignored) for c in conflicts.entries] == [
        ("sector_name", "Basic health care", "Primary healthcare"),
    ]


def test_sector_category_uses_longest_prefix(builders):
    assert builders["sector"].prepare({"sector_code": "72040"}).attributes["category"] == "Humanitarian Aid"
    assert builders["sector"].prepare({"sector_code": "91010"}).attributes["category"] == (
        "Administrative Costs of Donors"
    )


def test_sector_unknown_prefix_is_uncategorized(builders):
    member = builders["sector"].prepare({"sector_code": "88888", "sector_name": "Space programmes"})
    assert member.attributes == {"sector_name": "Space programmes", "category": UNCATEGORIZED}


def test_sector_unknown_code_without_name_is_rejected(builders):
    with pytest.raises(NormalizationError) as exc:
        builders["sector"].prepare({"sector_code": "88888"})
    assert exc.value.dimension == "sector"


def test_sector_absent_maps_to_unspecified(builders):
    member = builders["sector"].prepare({"country": "KE"})
    assert member.natural_key == (UNSPECIFIED_CODE,)
    assert member.attributes == {"sector_name": UNSPECIFIED_NAME, "category": UNCATEGORIZED}


# -------------------------------------------------------------------
# Aid type / transaction type
# -------------------------------------------------------------------


def test_aid_type_code_is_uppercased(builders):
    member = builders["aid_type"].prepare({"aid_type": "c01"})
    assert member.natural_key == ("C01",)
    assert member.attributes == {"aid_type_name": "Project-type interventions"}


def test_transaction_type_v1_alias_and_name(builders):
    tt = builders["transaction_type"]
    assert tt.prepare({"transaction_type": "D"}).natural_key == ("3",)
    assert tt.prepare({"transaction_type_name": "disbursement"}).natural_key == ("3",)
    assert tt.prepare({"transaction_type": "3"}).attributes == {"name": "Disbursement"}


def test_aid_type_and_transaction_type_name_conflicts(builders, conflicts):
    builders["aid_type"].ingest({"aid_type": "C01", "aid_type_name": "Project"})
    builders["transaction_type"].ingest({"transaction_type": "D", "transaction_type_name": "Disbursement"})
    builders["transaction_type"].ingest({"transaction_type": "3", "transaction_type_name": "Payout"})

    assert [(c.dimension, c.natural_key, c.ignored) for c in conflicts.entries] == [
        ("aid_type", ("C01",), "Project"),
        ("transaction_type", ("3",), "Payout"),
    ]


def test_transaction_type_unknown_name_is_rejected(builders):
    with pytest.raises(NormalizationError):
        builders["transaction_type"].prepare({"transaction_type_name": "Gift"})


# -------------------------------------------------------------------
# Organization
# -------------------------------------------------------------------


def test_organization_natural_key_is_normalized(builders):
    org = builders["organization"]
    a = org.ingest({"reporting_org": "Example  Agency", "reporting_org_type": "10"})
    b = org.ingest({"reporting_org": "example agency", "reporting_org_type": "Government"})
    assert a == b
    assert org.records() == [
        {"org_id": 1, "org_name": "Example Agency", "org_type": "Government", "role": UNSPECIFIED_NAME},
    ]


def test_organization_display_spelling_conflict(builders, conflicts):
    org = builders["organization"]
    a = org.ingest({"reporting_org": "Example Agency", "reporting_org_type": "10"})
    b = org.ingest({"reporting_org": "EXAMPLE AGENCY", "reporting_org_type": "10"})

    assert a == b
    assert org.records()[0]["org_name"] == "Example Agency"
    assert [(c.field, c.kept, c.ignored) for c in conflicts.entries] == [
        ("org_name", "Example Agency", "EXAMPLE AGENCY"),
    ]


def test_organization_same_name_different_type_is_distinct(builders):
    org = builders["organization"]
    a = org.ingest({"reporting_org": "Acme", "reporting_org_type": "70"})
    b = org.ingest({"reporting_org": "Acme", "reporting_org_type": "60"})
    assert a != b


def test_organization_role_conflict(builders, conflicts):
    org = builders["organization"]
    org.ingest({"reporting_org": "UNICEF", "reporting_org_type": "40", "reporting_org_role": "funding"})
    org.ingest({"reporting_org": "UNICEF", "reporting_org_type": "40", "reporting_org_role": "implementing"})
    assert org.records()[0]["role"] == "Funder"
    assert [(c.field, c.kept, c.ignored) for c in conflicts.entries] == [("role", "Funder", "Implementer")]


def test_organization_unknown_type_code_is_rejected(builders):
    with pytest.raises(NormalizationError):
        builders["organization"].prepare({"reporting_org": "Acme", "reporting_org_type": "55"})


def test_organization_absent_maps_to_unspecified(builders):
    member = builders["organization"].prepare({})
    assert member.natural_key == ("unspecified", UNSPECIFIED_NAME)


# -------------------------------------------------------------------
# Shared behaviour
# -------------------------------------------------------------------


def test_prepare_does_not_touch_resolver_or_rows(builders, resolver):
    builders["country"].prepare({"country": "KE"})
    assert resolver.lookup("country", ("KE",)) is None
    assert len(builders["country"]) == 0


def test_builders_share_one_resolver(builders, resolver):
    builders["country"].ingest({"country": "KE"})
    builders["sector"].ingest({"sector_code": "12220"})
    assert resolver.dimensions() == ["country", "sector"]
