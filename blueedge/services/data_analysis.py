from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from .extraction import Entity, NumericalValue, extract_party_mentions, extract_percentages

COMPARISON_PARTIES = ("Labour", "Conservative", "Liberal Democrat", "Green", "Independent")
AUTHORITY_TYPE_SUFFIX = re.compile(r"(District|Borough|County|City|Metropolitan|Unitary|Authority)$")


@dataclass
class AnalysisResult:
    type: str
    description: str
    data: Any
    methodology: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "data": self.data,
            "methodology": self.methodology,
        }


@dataclass
class _Group:
    name: str
    document_titles: List[str] = field(default_factory=list)
    contexts: List[str] = field(default_factory=list)


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _related(value: NumericalValue, key: str, contexts: Iterable[str]) -> bool:
    value_context = value.context.lower()
    return any(key in value_context or value_context in context.lower() for context in contexts)


def calculate_average_by_group(
    numerical_data: Sequence[NumericalValue],
    entities: Sequence[Entity],
    group_type: str,
) -> AnalysisResult:
    """Average the values whose context mentions (or is contained in) an entity's context."""
    groups: Dict[str, _Group] = {}
    for entity in entities:
        if entity.type != group_type:
            continue
        key = entity.entity.lower()
        group = groups.setdefault(key, _Group(name=entity.entity))
        if entity.document_title not in group.document_titles:
            group.document_titles.append(entity.document_title)
        group.contexts.append(entity.context)

    rows = []
    for key, group in groups.items():
        values = [item.value for item in numerical_data if _related(item, key, group.contexts)]
        rows.append({"group": group.name, "average": mean(values), "count": len(values), "values": values})

    return AnalysisResult(
        type="average_by_group",
        description=f"Average values grouped by {group_type}",
        data=rows,
        methodology=f"Calculated by matching numerical values with {group_type} entities based on context proximity.",
    )


def compare_groups(
    group1_name: str,
    group1_values: Sequence[float],
    group2_name: str,
    group2_values: Sequence[float],
) -> AnalysisResult:
    group1_avg = mean(group1_values)
    group2_avg = mean(group2_values)
    difference = group1_avg - group2_avg
    percentage_difference = (difference / group2_avg) * 100 if group2_avg != 0 else 0.0

    return AnalysisResult(
        type="group_comparison",
        description=f"Comparison between {group1_name} and {group2_name}",
        data={
            group1_name: {"average": group1_avg, "count": len(group1_values), "values": list(group1_values)},
            group2_name: {"average": group2_avg, "count": len(group2_values), "values": list(group2_values)},
            "difference": difference,
            "percentageDifference": percentage_difference,
            "higherGroup": group1_name if difference > 0 else group2_name,
            "statisticallySignificant": abs(difference) > 1
            and len(group1_values) >= 3
            and len(group2_values) >= 3,
        },
        methodology=(
            f"Direct comparison of average values between {group1_name} ({len(group1_values)} samples) "
            f"and {group2_name} ({len(group2_values)} samples)."
        ),
    )


def _mentions_any(value: NumericalValue, needles: Sequence[str]) -> bool:
    lowered = value.context.lower()
    return any(needle in lowered for needle in needles)


def _matched_to(values: Sequence[NumericalValue], party_entities: Sequence[Entity]) -> List[NumericalValue]:
    return [
        value
        for value in values
        if any(
            entity.entity.lower() in value.context.lower()
            or value.context.lower() in entity.context.lower()
            or entity.document_title == value.document_title
            for entity in party_entities
        )
    ]


def outlier_analysis(numerical_data: Sequence[NumericalValue]) -> AnalysisResult | None:
    percentages = [item for item in numerical_data if "%" in item.context]
    if not percentages:
        return None

    average = mean([item.value for item in percentages])
    std_dev = math.sqrt(mean([(item.value - average) ** 2 for item in percentages]))
    outliers = [
        {
            "value": item.value,
            "documentTitle": item.document_title,
            "context": item.context,
            "deviationFromMean": item.value - average,
        }
        for item in percentages
        if abs(item.value - average) > 2 * std_dev
    ]
    return AnalysisResult(
        type="outlier_analysis",
        description="Outliers in percentage values",
        data={"mean": average, "stdDev": std_dev, "outliers": outliers},
        methodology="Identified using standard deviation method (values > 2 standard deviations from mean)",
    )


def analyze_council_tax_signals(
    numerical_data: Sequence[NumericalValue],
    entities: Sequence[Entity],
) -> List[AnalysisResult]:
    results: List[AnalysisResult] = []

    parties = [entity for entity in entities if entity.type == "political_party"]
    conservatives = [entity for entity in parties if entity.entity.lower() in ("conservative", "tory")]
    labour = [entity for entity in parties if entity.entity.lower() == "labour"]
    authorities = [entity for entity in entities if entity.type == "local_authority"]

    council_tax_values = [
        item for item in numerical_data if _mentions_any(item, ("council tax", "band d", "% increase", "tax rate"))
    ]
    increases = [
        item
        for item in numerical_data
        if "%" in item.context and _mentions_any(item, ("increase", "rise", "change"))
    ]

    if parties and council_tax_values:
        results.append(calculate_average_by_group(council_tax_values, entities, "political_party"))

    if conservatives and labour and increases:
        conservative_increases = _matched_to(increases, conservatives)
        labour_increases = _matched_to(increases, labour)
        if conservative_increases and labour_increases:
            comparison = compare_groups(
                "Conservative",
                [item.value for item in conservative_increases],
                "Labour",
                [item.value for item in labour_increases],
            )
            comparison.methodology = (
                "Compared council tax percentage increases between Conservative-controlled councils "
                f"({len(conservative_increases)} data points) and Labour-controlled councils "
                f"({len(labour_increases)} data points). Data was matched by finding percentage values "
                "in the same context or document as political control information."
            )
            results.append(comparison)

    authority_types = []
    for authority in authorities:
        match = AUTHORITY_TYPE_SUFFIX.search(authority.entity)
        if match:
            authority_types.append(Entity(match.group(0), "authority_type", authority.context, authority.document_title))
    if authority_types:
        results.append(calculate_average_by_group(numerical_data, authority_types, "authority_type"))

    outliers = outlier_analysis(numerical_data)
    if outliers is not None:
        results.append(outliers)

    return results


def _party_values(party: str, entities: Sequence[Entity], numerical_data: Sequence[NumericalValue]) -> List[float]:
    values: List[float] = []
    for entity in entities:
        if entity.entity.lower() != party.lower():
            continue
        for item in numerical_data:
            if "%" in item.context and (
                entity.entity.lower() in item.context.lower() or item.context.lower() in entity.context.lower()
            ):
                values.append(item.value)
    return values


def extract_and_analyze_data(documents: Iterable[Any]) -> List[AnalysisResult]:
    """Percentage and party-mention analysis over objects exposing ``title`` and ``content``."""
    numerical_data: List[NumericalValue] = []
    entities: List[Entity] = []

    for document in documents:
        title = getattr(document, "title", None) or "Unknown Document"
        content = getattr(document, "content", "") or ""
        numerical_data.extend(extract_percentages(content, title))
        entities.extend(extract_party_mentions(content, title, COMPARISON_PARTIES))

    if not any(_mentions_any(item, ("council tax", "tax increase")) for item in numerical_data):
        return []

    results = analyze_council_tax_signals(numerical_data, entities)

    labour_values = _party_values("Labour", entities, numerical_data)
    conservative_values = _party_values("Conservative", entities, numerical_data)
    if labour_values and conservative_values:
        results.append(compare_groups("Labour", labour_values, "Conservative", conservative_values))

    return results
