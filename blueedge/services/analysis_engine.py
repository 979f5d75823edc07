from __future__ import annotations

import enum
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from .council_tax import analyze_council_tax_data_with_fallback, render_council_tax_report
from .data_analysis import mean

logger = logging.getLogger(__name__)

BUDGET_PATTERN = re.compile(
    r"([A-Za-z ]+) (?:budget|allocation|funding|spending)(?:[:\s]+)(?:£|\$|€)?(\d+(?:,\d+)*(?:\.\d+)?)(?: ?[mb]illion)?",
    re.IGNORECASE,
)
SPENDING_PATTERN = re.compile(
    r"(?:spent|spending|expenditure|cost)(?:\s+of)?(?:\s+on)?\s+([A-Za-z ]+)(?:[:\s]+)(?:£|\$|€)?"
    r"(\d+(?:,\d+)*(?:\.\d+)?)(?: ?[mb]illion)?",
    re.IGNORECASE,
)
FISCAL_YEAR_PATTERN = re.compile(r"(20\d{2})(?:\s*[-/]\s*(?:20)?(\d{2}))?")
CHANGE_PATTERN = re.compile(r"(\+|-)?(\d+(?:\.\d+)?)%\s+(?:increase|decrease|change)", re.IGNORECASE)
DEPARTMENT_PATTERN = re.compile(r"([A-Za-z ]+) (?:Department|Ministry|Office)", re.IGNORECASE)

GENERAL_REPORT = (
    "## General Data Analysis\n\nThis is a general analysis of the provided documents. "
    "For more specific analysis, please refine your query."
)


class AnalysisType(str, enum.Enum):
    COUNCIL_TAX = "council_tax"
    BUDGET_COMPARISON = "budget_comparison"
    SPENDING_ANALYSIS = "spending_analysis"
    DEMOGRAPHIC_ANALYSIS = "demographic_analysis"
    ELECTION_RESULTS = "election_results"
    GENERAL = "general"


@dataclass
class SourceDocument:
    title: str
    content: str
    id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisReport:
    type: AnalysisType
    title: str
    summary: str
    markdown_report: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "summary": self.summary,
            "markdownReport": self.markdown_report,
            "data": self.data,
        }


def _has_any(text: str, words: Iterable[str]) -> bool:
    return any(word in text for word in words)


def detect_analysis_type(query: str) -> AnalysisType:
    lowered = query.lower()
    if _has_any(lowered, ("council tax", "tax rate")) and _has_any(
        lowered, ("labour", "conservative", "party", "political")
    ):
        return AnalysisType.COUNCIL_TAX
    if _has_any(lowered, ("budget", "spending")) and _has_any(lowered, ("compare", "comparison", "difference")):
        return AnalysisType.BUDGET_COMPARISON
    if _has_any(lowered, ("spend", "expenditure", "cost", "funding")):
        return AnalysisType.SPENDING_ANALYSIS
    if _has_any(lowered, ("demographic", "population", "age group", "ethnicity")):
        return AnalysisType.DEMOGRAPHIC_ANALYSIS
    if _has_any(lowered, ("election", "vote", "ballot", "won", "majority")):
        return AnalysisType.ELECTION_RESULTS
    return AnalysisType.GENERAL


_ALIGN_MARKERS = {"left": " :--- |", "center": " :---: |", "right": " ---: |"}


def generate_markdown_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    alignments: Sequence[str] = (),
) -> str:
    if not rows:
        return ""
    table = "| " + " | ".join(headers) + " |\n|"
    for index in range(len(headers)):
        align = alignments[index] if index < len(alignments) else "left"
        table += _ALIGN_MARKERS.get(align, " --- |")
    table += "\n"
    for row in rows:
        table += "| " + " | ".join(str(cell) for cell in row) + " |\n"
    return table


def format_number(
    num: float,
    decimals: int = 2,
    prefix: str = "",
    suffix: str = "",
    use_commas: bool = True,
) -> str:
    formatted = f"{num:,.{decimals}f}" if use_commas else f"{num:.{decimals}f}"
    return f"{prefix}{formatted}{suffix}"


def _pounds(amount: float) -> str:
    return format_number(amount, prefix="£")


def _scaled_amount(match: re.Match) -> float:
    amount = float(match.group(2).replace(",", ""))
    lowered = match.group(0).lower()
    if "billion" in lowered:
        return amount * 1_000_000_000
    if "million" in lowered:
        return amount * 1_000_000
    return amount


def _fiscal_year(content: str, position: int) -> str:
    start = max(0, position - 50)
    match = FISCAL_YEAR_PATTERN.search(content[start : start + 100])
    if not match:
        return "Unknown"
    return match.group(1) + (f"-{match.group(2)}" if match.group(2) else "")


def _signed(value: float, decimals: int = 2) -> str:
    return f"{'+' if value >= 0 else ''}{value:.{decimals}f}%"


def analyze_budget_data(documents: Sequence[SourceDocument]) -> AnalysisReport:
    budget_rows: List[Dict[str, Any]] = []
    for document in documents:
        content = document.content or ""
        for match in BUDGET_PATTERN.finditer(content):
            change = CHANGE_PATTERN.search(content[match.start() : match.start() + 200])
            change_percent = None
            if change:
                change_percent = float(change.group(2)) * (-1 if change.group(1) == "-" else 1)
            budget_rows.append(
                {
                    "department": match.group(1).strip(),
                    "year": _fiscal_year(content, match.start()),
                    "amount": _scaled_amount(match),
                    "changePercent": change_percent,
                }
            )

    grouped: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for row in budget_rows:
        grouped.setdefault(row["department"], {})[row["year"]] = {
            "amount": row["amount"],
            "changePercent": row["changePercent"],
        }

    years = sorted({row["year"] for row in budget_rows})

    def department_changes(year_data: Dict[str, Dict[str, Any]]) -> List[float]:
        return [entry["changePercent"] for entry in year_data.values() if entry["changePercent"] is not None]

    report = "## Budget Comparison Analysis\n\n"
    report += "### Summary\n\n"
    report += f"This analysis compares budget allocations across {len(grouped)} departments.\n\n"
    report += "### Methodology\n\n"
    report += "This analysis was performed by:\n\n"
    report += "1. Extracting budget figures from the provided documents\n"
    report += "2. Grouping budget data by department and fiscal year\n"
    report += "3. Calculating changes between fiscal years where data is available\n"
    report += "4. Identifying departments with the largest increases and decreases\n\n"
    report += "### Budget Data by Department\n\n"

    table_rows = []
    for department, year_data in grouped.items():
        row = [department]
        for year in years:
            entry = year_data.get(year)
            if entry is None:
                row.append("N/A")
                continue
            change_text = ""
            if entry["changePercent"] is not None:
                change_text = f" ({'+' if entry['changePercent'] >= 0 else ''}{entry['changePercent']:g}%)"
            row.append(f"{_pounds(entry['amount'])}{change_text}")
        table_rows.append(row)
    report += generate_markdown_table(["Department", *years], table_rows)

    average_change = 0.0
    if len(years) > 1:
        with_change = [department_changes(data) for data in grouped.values() if department_changes(data)]
        average_change = mean([mean(changes) for changes in with_change])

        report += "\n\n### Year-on-Year Changes\n\n"
        report += f"Average budget change across all departments: **{_signed(average_change)}**\n\n"

        ranked = sorted(
            ((department, mean(department_changes(data))) for department, data in grouped.items()),
            key=lambda item: item[1],
            reverse=True,
        )
        if ranked:
            report += "#### Largest Budget Increases:\n\n"
            for department, change in [item for item in ranked if item[1] > 0][:5]:
                report += f"- **{department}**: +{change:.2f}%\n"
            report += "\n#### Largest Budget Decreases:\n\n"
            for department, change in [item for item in ranked if item[1] < 0][:5]:
                report += f"- **{department}**: {change:.2f}%\n"

    report += "\n\n### Conclusion\n\n"
    report += "Based on the available data, "
    if len(years) > 1:
        direction = "increased" if average_change >= 0 else "decreased"
        report += f"budgets have {direction} by an average of {abs(average_change):.2f}% "
        report += f"across departments between {years[0]} and {years[-1]}. "
    report += "The analysis shows variations in budget allocations across different departments, "
    report += "reflecting changing priorities and funding needs."

    year_note = f" for fiscal years {', '.join(years)}" if len(years) > 1 else ""
    return AnalysisReport(
        type=AnalysisType.BUDGET_COMPARISON,
        title="Budget Comparison Analysis",
        summary=f"Analysis of budget allocations across {len(grouped)} departments{year_note}.",
        markdown_report=report,
        data={"departments": list(grouped), "years": years, "budgetData": grouped},
    )


def analyze_spending_data(documents: Sequence[SourceDocument]) -> AnalysisReport:
    spending_rows: List[Dict[str, Any]] = []
    for document in documents:
        content = document.content or ""
        for match in SPENDING_PATTERN.finditer(content):
            window_start = max(0, match.start() - 100)
            department = DEPARTMENT_PATTERN.search(content[window_start : window_start + 150])
            spending_rows.append(
                {
                    "category": match.group(1).strip(),
                    "amount": _scaled_amount(match),
                    "year": _fiscal_year(content, match.start()),
                    "department": department.group(1).strip() if department else None,
                }
            )

    grouped: Dict[str, Dict[str, Any]] = {}
    for row in spending_rows:
        group = grouped.setdefault(row["category"], {"totalAmount": 0.0, "yearlyData": {}, "departments": []})
        group["totalAmount"] += row["amount"]
        group["yearlyData"][row["year"]] = group["yearlyData"].get(row["year"], 0.0) + row["amount"]
        if row["department"] and row["department"] not in group["departments"]:
            group["departments"].append(row["department"])

    ranked = sorted(grouped.items(), key=lambda item: item[1]["totalAmount"], reverse=True)
    years = sorted({row["year"] for row in spending_rows})

    def yearly_changes() -> List[Dict[str, Any]]:
        totals = {year: sum(data["yearlyData"].get(year, 0.0) for _, data in ranked) for year in years}
        changes = []
        for previous, current in zip(years, years[1:]):
            if totals[previous] > 0:
                change = totals[current] - totals[previous]
                changes.append(
                    {
                        "year": f"{previous} to {current}",
                        "change": change,
                        "changePercent": change / totals[previous] * 100,
                    }
                )
        return changes

    report = "## Spending Analysis\n\n"
    report += "### Summary\n\n"
    report += f"This analysis examines spending across {len(grouped)} categories.\n\n"
    report += "### Methodology\n\n"
    report += "This analysis was performed by:\n\n"
    report += "1. Extracting spending figures from the provided documents\n"
    report += "2. Grouping spending data by category and fiscal year\n"
    report += "3. Calculating total spending for each category\n"
    report += "4. Identifying categories with the highest expenditure\n\n"
    report += "### Spending by Category\n\n"
    report += generate_markdown_table(
        ["Category", "Total Spending", "Departments"],
        [
            [category, _pounds(data["totalAmount"]), ", ".join(data["departments"]) or "Unknown"]
            for category, data in ranked
        ],
    )

    if len(years) > 1 and years[0] != "Unknown":
        report += "\n\n### Yearly Spending Breakdown\n\n"
        report += generate_markdown_table(
            ["Category", *years],
            [
                [category, *(_pounds(data["yearlyData"].get(year, 0.0)) for year in years)]
                for category, data in ranked
            ],
        )
        changes = yearly_changes()
        report += "\n\n### Year-on-Year Changes\n\n"
        if changes:
            report += generate_markdown_table(
                ["Period", "Change", "Percentage Change"],
                [[item["year"], _pounds(item["change"]), _signed(item["changePercent"])] for item in changes],
            )

    report += "\n\n### Top Spending Categories\n\n"
    for index, (category, data) in enumerate(ranked[:5], start=1):
        report += f"{index}. **{category}**: {_pounds(data['totalAmount'])}\n"

    report += "\n\n### Conclusion\n\n"
    report += "Based on the available data, "
    if ranked:
        second = ranked[1][0] if len(ranked) > 1 else "N/A"
        third = ranked[2][0] if len(ranked) > 2 else "N/A"
        report += (
            f"the highest spending category is **{ranked[0][0]}** at {_pounds(ranked[0][1]['totalAmount'])}, "
        )
        report += f"followed by **{second}** and **{third}**. "
    if len(years) > 1:
        changes = yearly_changes()
        if changes:
            average = mean([item["changePercent"] for item in changes])
            direction = "increased" if average >= 0 else "decreased"
            report += f"Overall spending has {direction} by an average of {abs(average):.2f}% year-on-year. "
    report += "The analysis highlights the main areas of expenditure and how spending priorities have evolved over time."

    year_note = f" for fiscal years {', '.join(years)}" if len(years) > 1 else ""
    return AnalysisReport(
        type=AnalysisType.SPENDING_ANALYSIS,
        title="Spending Analysis",
        summary=f"Analysis of spending across {len(grouped)} categories{year_note}.",
        markdown_report=report,
        data={"categories": list(grouped), "years": years, "spendingData": grouped},
    )


def _document_ids(documents: Sequence[SourceDocument]) -> List[uuid.UUID]:
    ids: List[uuid.UUID] = []
    for document in documents:
        if not document.id:
            continue
        try:
            parsed = uuid.UUID(str(document.id))
        except ValueError:
            continue
        if parsed not in ids:
            ids.append(parsed)
    return ids


def perform_analysis(db: Session, query: str, documents: Sequence[SourceDocument]) -> AnalysisReport:
    analysis_type = detect_analysis_type(query)
    logger.info("Running %s analysis over %s excerpts", analysis_type.value, len(documents))

    if analysis_type is AnalysisType.COUNCIL_TAX:
        summary = analyze_council_tax_data_with_fallback(db, _document_ids(documents), use_sample_if_empty=True)
        return AnalysisReport(
            type=AnalysisType.COUNCIL_TAX,
            title="Council Tax Analysis: Labour vs. Conservative",
            summary="Analysis of council tax increases by political party control.",
            markdown_report=render_council_tax_report(summary),
            data=summary.to_dict(),
        )
    if analysis_type is AnalysisType.BUDGET_COMPARISON:
        return analyze_budget_data(documents)
    if analysis_type is AnalysisType.SPENDING_ANALYSIS:
        return analyze_spending_data(documents)

    return AnalysisReport(
        type=AnalysisType.GENERAL,
        title="General Data Analysis",
        summary="Basic analysis of the provided documents.",
        markdown_report=GENERAL_REPORT,
    )


def documents_from_results(results: Iterable[Any]) -> List[SourceDocument]:
    """Search results (``SearchResult``) as analysis inputs."""
    documents = []
    for result in results:
        metadata = dict(result.metadata or {})
        documents.append(
            SourceDocument(
                id=metadata.get("documentId") or str(result.document_id),
                title=result.document_title,
                content=result.content,
                metadata=metadata,
            )
        )
    return documents


def generate_analysis_report(db: Session, query: str, results: Iterable[Any]) -> str:
    try:
        return perform_analysis(db, query, documents_from_results(results)).markdown_report
    except Exception as exc:
        logger.exception("Error generating analysis report")
        return f"## Analysis Error\n\nAn error occurred while analyzing the data: {exc}"
