"""Static code lists and synonym tables used to conform source vocabularies.

Builders receive a Lookups instance at construction; the defaults below cover
the IATI / OECD-DAC / World Bank code lists the two extracts use. The country
table can be extended from a JSON file without code changes.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path

# (iso2, iso3, canonical name, alternate spellings)
COUNTRIES: list[tuple[str, str, str, tuple[str, ...]]] = [
    ("AF", "AFG", "Afghanistan", ("Islamic Republic of Afghanistan",)),
    ("AL", "ALB", "Albania", ()),
    ("DZ", "DZA", "Algeria", ()),
    ("AO", "AGO", "Angola", ()),
    ("AR", "ARG", "Argentina", ()),
    ("AM", "ARM", "Armenia", ()),
    ("AZ", "AZE", "Azerbaijan", ()),
    ("BD", "BGD", "Bangladesh", ("People's Republic of Bangladesh",)),
    ("BJ", "BEN", "Benin", ()),
    ("BT", "BTN", "Bhutan", ()),
    ("BO", "BOL", "Bolivia", ("Bolivia (Plurinational State of)", "Plurinational State of Bolivia")),
    ("BA", "BIH", "Bosnia and Herzegovina", ("Bosnia-Herzegovina",)),
    ("BW", "BWA", "Botswana", ()),
    ("BR", "BRA", "Brazil", ()),
    ("BF", "BFA", "Burkina Faso", ()),
    ("BI", "BDI", "Burundi", ()),
    ("KH", "KHM", "Cambodia", ()),
    ("CM", "CMR", "Cameroon", ()),
    ("CV", "CPV", "Cabo Verde", ("Cape Verde",)),
    ("CF", "CAF", "Central African Republic", ("CAR",)),
    ("TD", "TCD", "Chad", ()),
    ("CN", "CHN", "China", ("People's Republic of China",)),
    ("CO", "COL", "Colombia", ()),
    ("KM", "COM", "Comoros", ()),
    ("CD", "COD", "Democratic Republic of the Congo", ("Congo, Dem. Rep.", "DR Congo", "DRC", "Congo (Kinshasa)")),
    ("CG", "COG", "Congo", ("Congo, Rep.", "Republic of the Congo", "Congo (Brazzaville)")),
    ("CI", "CIV", "Cote d'Ivoire", ("Côte d'Ivoire", "Ivory Coast")),
    ("CU", "CUB", "Cuba", ()),
    ("DJ", "DJI", "Djibouti", ()),
    ("DO", "DOM", "Dominican Republic", ()),
    ("EC", "ECU", "Ecuador", ()),
    ("EG", "EGY", "Egypt", ("Egypt, Arab Rep.", "Arab Republic of Egypt")),
    ("SV", "SLV", "El Salvador", ()),
    ("ER", "ERI", "Eritrea", ()),
    ("SZ", "SWZ", "Eswatini", ("Swaziland",)),
    ("ET", "ETH", "Ethiopia", ()),
    ("GA", "GAB", "Gabon", ()),
    ("GM", "GMB", "Gambia", ("Gambia, The", "The Gambia")),
    ("GE", "GEO", "Georgia", ()),
    ("GH", "GHA", "Ghana", ()),
    ("GT", "GTM", "Guatemala", ()),
    ("GN", "GIN", "Guinea", ()),
    ("GW", "GNB", "Guinea-Bissau", ()),
    ("HT", "HTI", "Haiti", ()),
    ("HN", "HND", "Honduras", ()),
    ("IN", "IND", "India", ()),
    ("ID", "IDN", "Indonesia", ()),
    ("IR", "IRN", "Iran", ("Iran, Islamic Rep.", "Islamic Republic of Iran")),
    ("IQ", "IRQ", "Iraq", ()),
    ("JM", "JAM", "Jamaica", ()),
    ("JO", "JOR", "Jordan", ()),
    ("KZ", "KAZ", "Kazakhstan", ()),
    ("KE", "KEN", "Kenya", ()),
    ("XK", "XKX", "Kosovo", ()),
    ("KG", "KGZ", "Kyrgyzstan", ("Kyrgyz Republic",)),
    ("LA", "LAO", "Laos", ("Lao PDR", "Lao People's Democratic Republic")),
    ("LB", "LBN", "Lebanon", ()),
    ("LS", "LSO", "Lesotho", ()),
    ("LR", "LBR", "Liberia", ()),
    ("LY", "LBY", "Libya", ()),
    ("MG", "MDG", "Madagascar", ()),
    ("MW", "MWI", "Malawi", ()),
    ("MY", "MYS", "Malaysia", ()),
    ("ML", "MLI", "Mali", ()),
    ("MR", "MRT", "Mauritania", ()),
    ("MX", "MEX", "Mexico", ()),
    ("MD", "MDA", "Moldova", ("Republic of Moldova",)),
    ("MN", "MNG", "Mongolia", ()),
    ("MA", "MAR", "Morocco", ()),
    ("MZ", "MOZ", "Mozambique", ()),
    ("MM", "MMR", "Myanmar", ("Burma",)),
    ("NA", "NAM", "Namibia", ()),
    ("NP", "NPL", "Nepal", ()),
    ("NI", "NIC", "Nicaragua", ()),
    ("NE", "NER", "Niger", ()),
    ("NG", "NGA", "Nigeria", ()),
    ("KP", "PRK", "North Korea", ("Korea, Dem. People's Rep.", "Democratic People's Republic of Korea")),
    ("MK", "MKD", "North Macedonia", ("Macedonia", "Former Yugoslav Republic of Macedonia")),
    ("PK", "PAK", "Pakistan", ()),
    ("PS", "PSE", "Palestine", ("West Bank and Gaza", "State of Palestine", "Palestinian Territories")),
    ("PA", "PAN", "Panama", ()),
    ("PG", "PNG", "Papua New Guinea", ()),
    ("PY", "PRY", "Paraguay", ()),
    ("PE", "PER", "Peru", ()),
    ("PH", "PHL", "Philippines", ()),
    ("RW", "RWA", "Rwanda", ()),
    ("SN", "SEN", "Senegal", ()),
    ("RS", "SRB", "Serbia", ()),
    ("SL", "SLE", "Sierra Leone", ()),
    ("SO", "SOM", "Somalia", ()),
    ("ZA", "ZAF", "South Africa", ()),
    ("SS", "SSD", "South Sudan", ()),
    ("LK", "LKA", "Sri Lanka", ()),
    ("SD", "SDN", "Sudan", ()),
    ("SY", "SYR", "Syria", ("Syrian Arab Republic",)),
    ("TJ", "TJK", "Tajikistan", ()),
    ("TZ", "TZA", "Tanzania", ("United Republic of Tanzania",)),
    ("TH", "THA", "Thailand", ()),
    ("TL", "TLS", "Timor-Leste", ("East Timor",)),
    ("TG", "TGO", "Togo", ()),
    ("TN", "TUN", "Tunisia", ()),
    ("TR", "TUR", "Turkey", ("Turkiye", "Türkiye")),
    ("UG", "UGA", "Uganda", ()),
    ("UA", "UKR", "Ukraine", ()),
    ("UZ", "UZB", "Uzbekistan", ()),
    ("VE", "VEN", "Venezuela", ("Venezuela, RB", "Bolivarian Republic of Venezuela")),
    ("VN", "VNM", "Vietnam", ("Viet Nam",)),
    ("YE", "YEM", "Yemen", ("Yemen, Rep.",)),
    ("ZM", "ZMB", "Zambia", ()),
    ("ZW", "ZWE", "Zimbabwe", ()),
    ("GB", "GBR", "United Kingdom", ("UK", "Great Britain")),
    ("US", "USA", "United States", ("United States of America", "USA")),
]

# OECD-DAC sector code prefixes; longest match wins
SECTOR_CATEGORIES: dict[str, str] = {
    "1": "Social Infrastructure & Services",
    "2": "Economic Infrastructure & Services",
    "3": "Production Sectors",
    "4": "Multi-Sector / Cross-Cutting",
    "5": "Commodity Aid / General Programme Assistance",
    "6": "Action Relating to Debt",
    "7": "Humanitarian Aid",
    "91": "Administrative Costs of Donors",
    "93": "Refugees in Donor Countries",
    "99": "Unallocated / Unspecified",
}
UNCATEGORIZED = "Uncategorized"

SECTOR_NAMES: dict[str, str] = {
    "11110": "Education policy and administrative management",
    "11220": "Primary education",
    "12110": "Health policy and administrative management",
    "12220": "Basic health care",
    "12240": "Basic nutrition",
    "13020": "Reproductive health care",
    "14030": "Basic drinking water supply and basic sanitation",
    "15110": "Public sector policy and administrative management",
    "15220": "Civilian peace-building, conflict prevention and resolution",
    "16010": "Social Protection",
    "21010": "Transport policy and administrative management",
    "23110": "Energy policy and administrative management",
    "31120": "Agricultural development",
    "31161": "Food crop production",
    "43010": "Multisector aid",
    "52010": "Food assistance",
    "60010": "Action relating to debt",
    "72010": "Material relief assistance and services",
    "72040": "Emergency food assistance",
    "73010": "Immediate post-emergency reconstruction and rehabilitation",
    "74020": "Multi-hazard response preparedness",
    "91010": "Administrative costs (non-sector allocable)",
    "93010": "Refugees/asylum seekers in donor countries",
    "99810": "Sectors not specified",
}

# IATI OrganisationType
ORG_TYPES: dict[str, str] = {
    "10": "Government",
    "11": "Local Government",
    "15": "Other Public Sector",
    "21": "International NGO",
    "22": "National NGO",
    "23": "Regional NGO",
    "24": "Partner Country based NGO",
    "30": "Public Private Partnership",
    "40": "Multilateral",
    "60": "Foundation",
    "70": "Private Sector",
    "71": "Private Sector in Provider Country",
    "72": "Private Sector in Aid Recipient Country",
    "73": "Private Sector in Third Country",
    "80": "Academic, Training and Research",
    "90": "Other",
}

# IATI OrganisationRole codes and common spellings
ORG_ROLES: dict[str, str] = {
    "1": "Funder",
    "funding": "Funder",
    "funder": "Funder",
    "2": "Accountable",
    "accountable": "Accountable",
    "3": "Extending",
    "extending": "Extending",
    "4": "Implementer",
    "implementing": "Implementer",
    "implementer": "Implementer",
}

# OECD-DAC aid types
AID_TYPES: dict[str, str] = {
    "A01": "General budget support",
    "A02": "Sector budget support",
    "B01": "Core support to NGOs, other private bodies, PPPs and research institutes",
    "B02": "Core contributions to multilateral institutions",
    "B03": "Contributions to specific-purpose programmes and funds managed by implementing partners",
    "B04": "Basket funds/pooled funding",
    "C01": "Project-type interventions",
    "D01": "Donor country personnel",
    "D02": "Other technical assistance",
    "E01": "Scholarships/training in donor country",
    "E02": "Imputed student costs",
    "F01": "Debt relief",
    "G01": "Administrative costs not included elsewhere",
    "H01": "Development awareness",
    "H02": "Refugees/asylum seekers in donor countries",
}

# IATI TransactionType (v2 numeric codes)
TRANSACTION_TYPES: dict[str, str] = {
    "1": "Incoming Funds",
    "2": "Outgoing Commitment",
    "3": "Disbursement",
    "4": "Expenditure",
    "5": "Interest Payment",
    "6": "Loan Repayment",
    "7": "Reimbursement",
    "8": "Purchase of Equity",
    "9": "Sale of Equity",
    "10": "Credit Guarantee",
    "11": "Incoming Commitment",
    "12": "Outgoing Pledge",
    "13": "Incoming Pledge",
}

# IATI v1 letter codes
TRANSACTION_TYPE_ALIASES: dict[str, str] = {
    "IF": "1",
    "C": "2",
    "D": "3",
    "E": "4",
    "IR": "5",
    "LR": "6",
    "R": "7",
    "QP": "8",
    "QS": "9",
    "CG": "10",
}

# Transaction types whose value may legitimately be negative
SIGNED_TRANSACTION_TYPES = frozenset({"5", "6", "7", "9"})

# World Bank WDI indicator codes -> fact_country_context column
INDICATOR_CODES: dict[str, str] = {
    "SP.POP.TOTL": "population",
    "NY.GDP.PCAP.CD": "gdp_per_capita",
    "SP.DYN.LE00.IN": "life_expectancy",
    "FP.CPI.TOTL.ZG": "inflation_pct",
    "NY.GDP.MKTP.KD.ZG": "gdp_growth_pct",
}

UNSPECIFIED_CODE = "UNSPECIFIED"
UNSPECIFIED_NAME = "Unspecified"


def _alias_key(value: str) -> str:
    return " ".join(value.split()).casefold()


@dataclass
class Lookups:
    """Canonical code lists injected into the dimension builders."""

    country_names: dict[str, str] = field(default_factory=dict)
    country_aliases: dict[str, str] = field(default_factory=dict)
    sector_categories: dict[str, str] = field(default_factory=lambda: dict(SECTOR_CATEGORIES))
    sector_names: dict[str, str] = field(default_factory=lambda: dict(SECTOR_NAMES))
    org_types: dict[str, str] = field(default_factory=lambda: dict(ORG_TYPES))
    org_roles: dict[str, str] = field(default_factory=lambda: dict(ORG_ROLES))
    aid_types: dict[str, str] = field(default_factory=lambda: dict(AID_TYPES))
    transaction_types: dict[str, str] = field(default_factory=lambda: dict(TRANSACTION_TYPES))
    transaction_type_aliases: dict[str, str] = field(
        default_factory=lambda: dict(TRANSACTION_TYPE_ALIASES)
    )
    signed_transaction_types: frozenset[str] = SIGNED_TRANSACTION_TYPES
    indicator_codes: dict[str, str] = field(default_factory=lambda: dict(INDICATOR_CODES))

    @classmethod
    def default(cls) -> "Lookups":
        lookups = cls()
        for iso2, iso3, name, synonyms in COUNTRIES:
            lookups.add_country(iso2, name, iso3=iso3, synonyms=synonyms)
        return lookups

    @classmethod
    def from_settings(cls, settings) -> "Lookups":
        lookups = cls.default()
        if settings.country_lookup_path:
            lookups.load_countries(settings.country_lookup_path)
        return lookups

    def add_country(
        self,
        iso2: str,
        name: str,
        iso3: str | None = None,
        synonyms: tuple[str, ...] | list[str] = (),
    ) -> None:
        iso2 = iso2.strip().upper()
        self.country_names[iso2] = name.strip()
        self.country_aliases[_alias_key(name)] = iso2
        if iso3:
            self.country_aliases[_alias_key(iso3)] = iso2
        for synonym in synonyms:
            self.country_aliases[_alias_key(synonym)] = iso2

    def load_countries(self, path: str | Path) -> int:
        """Merge country entries from a JSON file over the current table.

        The file holds a list of objects with ``iso_code``, ``name`` and
        optional ``iso3`` / ``synonyms``.
        """
        with open(path, encoding="utf-8") as f:
            entries = json.load(f)
        for entry in entries:
            self.add_country(
                entry["iso_code"],
                entry["name"],
                iso3=entry.get("iso3"),
                synonyms=entry.get("synonyms", ()),
            )
        return len(entries)

    def country_for_alias(self, value: str) -> str | None:
        return self.country_aliases.get(_alias_key(value))

    def sector_category(self, sector_code: str) -> str:
        for length in range(len(sector_code), 0, -1):
            category = self.sector_categories.get(sector_code[:length])
            if category is not None:
                return category
        return UNCATEGORIZED
