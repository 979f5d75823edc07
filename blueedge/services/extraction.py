from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

CONTEXT_RADIUS = 100
RATE_CONTEXT_RADIUS = 200

PARTIES = (
    "Labour",
    "Conservative",
    "Liberal Democrat",
    "Green",
    "Independent",
    "Reform UK",
    "SNP",
    "Plaid Cymru",
)

GOVERNMENT_DEPARTMENTS = (
    "Department for Education",
    "Department of Health",
    "Home Office",
    "Treasury",
    "Ministry of Defence",
    "Department for Transport",
    "Department for Work and Pensions",
)

FINANCIAL_KEYWORDS = (
    "council tax", "increase", "decrease", "rate", "percentage", "budget", "funding",
    "allocation", "spending", "cost", "expense", "revenue", "income", "deficit", "surplus",
    "band", "authority", "borough", "district", "county", "unitary", "metropolitan",
)

NUMBER_PATTERN = re.compile(
    r"(?:(?P<currency>[£$€])\s*)?\b(?P<number>\d+(?:,\d{3})*(?:\.\d+)?)(?![.,]?\w)(?P<percent>\s*%)?"
)
PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
NUMBER_ENTITY_PATTERN = re.compile(
    r"(?:council|authority|borough|district|county|unitary|metropolitan)\s+(?:of\s+)?([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)",
    re.IGNORECASE,
)
AUTHORITY_ENTITY_PATTERN = re.compile(
    r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Council|Borough|District|County|City|Metropolitan|Unitary|Authority))\b"
)

_AUTHORITY_SUFFIX = r"(?:Council|Authority|Borough|District|County|Unitary|Metropolitan)"
_CONTROL_PARTIES = r"(Labour|Conservative|Liberal Democrat|Green|Independent)"
AUTHORITY_NAME_PATTERN = re.compile(rf"([\w\s]+){_AUTHORITY_SUFFIX}", re.IGNORECASE)
PERCENT_CHANGE_PATTERN = re.compile(
    rf"([\w\s]+){_AUTHORITY_SUFFIX}[\w\s]*\s+(\d+(?:\.\d+)?)%\s+(?:increase|change|rise)", re.IGNORECASE
)
PARTY_CONTROL_PATTERN = re.compile(rf"{_CONTROL_PARTIES}\s+(?:control|controlled|run|led)", re.IGNORECASE)
TAX_RATE_PATTERN = re.compile(
    r"(?:Band D|average)\s+(?:council tax|CT)\s+(?:of|is|was|:)?\s+[£$]?(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE
)
CONTROL_STATEMENT_PATTERN = re.compile(
    rf"([\w\s]+){_AUTHORITY_SUFFIX}[\w\s]*\s+(?:is|was|are|were)\s+"
    rf"(?:controlled by|run by|under the control of|led by)\s+{_CONTROL_PARTIES}",
    re.IGNORECASE,
)
YEAR_RANGE_PATTERN = re.compile(r"(20\d{2})(?:\s*-\s*|/)?(20\d{2})")


class TextSource(Protocol):
    content: str
    document_title: str
    metadata: Dict[str, Any]


@dataclass
class NumericalValue:
    value: float
    context: str
    document_title: str
    is_percentage: bool = False
    has_currency: bool = False
    is_important: bool = False
    entity: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "isPercentage": self.is_percentage,
            "hasCurrency": self.has_currency,
            "context": self.context,
            "documentTitle": self.document_title,
            "isImportant": self.is_important,
            "entity": self.entity,
            "metadata": self.metadata,
        }


@dataclass
class Entity:
    entity: str
    type: str
    context: str
    document_title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "type": self.type,
            "context": self.context,
            "documentTitle": self.document_title,
        }


@dataclass
class CouncilTaxEntry:
    authority: str
    political_control: str = "Unknown"
    tax_rate: float = 0.0
    percentage_change: float = 0.0
    year: str = "Unknown"
    authority_type: str = "Unknown"
    document_title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": self.authority,
            "politicalControl": self.political_control,
            "taxRate": self.tax_rate,
            "percentageChange": self.percentage_change,
            "year": self.year,
            "authorityType": self.authority_type,
            "documentTitle": self.document_title,
        }


@dataclass
class AnalysisData:
    numerical_data: List[NumericalValue]
    entities: List[Entity]
    council_tax_data: List[CouncilTaxEntry]

    def grouped_entities(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for item in self.entities:
            names = grouped.setdefault(item.type, [])
            if item.entity not in names:
                names.append(item.entity)
        return grouped


def context_window(text: str, start: int, end: int, radius: int = CONTEXT_RADIUS) -> str:
    return text[max(0, start - radius) : min(len(text), end + radius)]


def _parse_number(raw: str) -> float:
    return float(raw.replace(",", ""))


def _year_range(text: str, default: str = "Unknown") -> str:
    match = YEAR_RANGE_PATTERN.search(text)
    return f"{match.group(1)}-{match.group(2)}" if match else default


def extract_numbers(text: str, document_title: str = "", metadata: Optional[Dict[str, Any]] = None) -> List[NumericalValue]:
    """Every number in ``text``, each with the context around its own position."""
    values: List[NumericalValue] = []
    for match in NUMBER_PATTERN.finditer(text):
        context = context_window(text, match.start(), match.end())
        lowered = context.lower()
        entity_match = NUMBER_ENTITY_PATTERN.search(context)
        values.append(
            NumericalValue(
                value=_parse_number(match.group("number")),
                context=context,
                document_title=document_title,
                is_percentage=match.group("percent") is not None,
                has_currency=match.group("currency") is not None,
                is_important=any(keyword in lowered for keyword in FINANCIAL_KEYWORDS),
                entity=entity_match.group(1).strip() if entity_match else "",
                metadata=dict(metadata or {}),
            )
        )
    return values


def extract_numerical_data(results: Iterable[TextSource]) -> List[NumericalValue]:
    values: List[NumericalValue] = []
    for result in results:
        values.extend(extract_numbers(result.content, result.document_title, result.metadata))
    return values


def extract_percentages(text: str, document_title: str = "") -> List[NumericalValue]:
    return [
        NumericalValue(
            value=float(match.group(1)),
            context=context_window(text, match.start(), match.end()),
            document_title=document_title,
            is_percentage=True,
        )
        for match in PERCENT_PATTERN.finditer(text)
    ]


def _named_entities(text: str, names: Iterable[str], kind: str, document_title: str) -> List[Entity]:
    found: List[Entity] = []
    for name in names:
        for match in re.finditer(rf"\b{re.escape(name)}\b", text, re.IGNORECASE):
            found.append(Entity(name, kind, context_window(text, match.start(), match.end()), document_title))
    return found


def extract_party_mentions(text: str, document_title: str = "", parties: Iterable[str] = PARTIES) -> List[Entity]:
    return _named_entities(text, parties, "political_party", document_title)


def extract_entities(text: str, document_title: str = "") -> List[Entity]:
    entities = extract_party_mentions(text, document_title)
    for match in AUTHORITY_ENTITY_PATTERN.finditer(text):
        entities.append(
            Entity(match.group(1), "local_authority", context_window(text, match.start(), match.end()), document_title)
        )
    entities.extend(_named_entities(text, GOVERNMENT_DEPARTMENTS, "government_department", document_title))
    return entities


def _authority_name(text: str) -> str:
    match = AUTHORITY_NAME_PATTERN.search(text)
    return match.group(1).strip() if match else "Unknown"


def extract_council_tax_rows(results: Iterable[TextSource]) -> List[CouncilTaxEntry]:
    """Council-tax changes, Band D rates and control statements found in free text."""
    results = list(results)
    rows: List[CouncilTaxEntry] = []

    for result in results:
        content = result.content
        control_match = PARTY_CONTROL_PATTERN.search(content)
        political_control = control_match.group(1).title() if control_match else "Unknown"
        year = _year_range(content)

        for match in PERCENT_CHANGE_PATTERN.finditer(content):
            rows.append(
                CouncilTaxEntry(
                    authority=_authority_name(match.group(0)),
                    political_control=political_control,
                    percentage_change=float(match.group(2)),
                    year=year,
                    document_title=result.document_title,
                )
            )

        for match in TAX_RATE_PATTERN.finditer(content):
            tax_rate = _parse_number(match.group(1))
            pending = next(
                (row for row in rows if row.document_title == result.document_title and row.tax_rate == 0),
                None,
            )
            if pending is not None:
                pending.tax_rate = tax_rate
                continue
            context = context_window(content, match.start(), match.end(), RATE_CONTEXT_RADIUS)
            rows.append(
                CouncilTaxEntry(
                    authority=_authority_name(context),
                    tax_rate=tax_rate,
                    year=_year_range(context),
                    document_title=result.document_title,
                )
            )

    for result in results:
        for match in CONTROL_STATEMENT_PATTERN.finditer(result.content):
            authority = _authority_name(match.group(0)).lower()
            party = match.group(2).title()
            for row in rows:
                existing = row.authority.lower()
                if authority in existing or existing in authority:
                    row.political_control = party

    return rows


def prepare_data_for_analysis(results: Iterable[TextSource]) -> AnalysisData:
    results = list(results)
    entities: List[Entity] = []
    for result in results:
        entities.extend(extract_entities(result.content, result.document_title))
    return AnalysisData(
        numerical_data=extract_numerical_data(results),
        entities=entities,
        council_tax_data=extract_council_tax_rows(results),
    )
