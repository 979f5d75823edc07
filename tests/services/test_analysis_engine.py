from __future__ import annotations

from types import SimpleNamespace

import pytest

from blueedge.services import analysis_engine
from blueedge.services.analysis_engine import (
    AnalysisType,
    SourceDocument,
    analyze_budget_data,
    analyze_spending_data,
    detect_analysis_type,
    documents_from_results,
    format_number,
    generate_analysis_report,
    generate_markdown_table,
    perform_analysis,
)


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("Did Labour or Conservative councils raise council tax more?", AnalysisType.COUNCIL_TAX),
        ("Compare the education budget with health", AnalysisType.BUDGET_COMPARISON),
        ("How much funding went to roads?", AnalysisType.SPENDING_ANALYSIS),
        ("Population by age group", AnalysisType.DEMOGRAPHIC_ANALYSIS),
        ("Who won the by-election?", AnalysisType.ELECTION_RESULTS),
        ("Summarise the manifesto", AnalysisType.GENERAL),
        ("What is the council tax band for my house?", AnalysisType.GENERAL),
    ],
)
def test_detect_analysis_type(query: str, expected: AnalysisType) -> None:
    assert detect_analysis_type(query) is expected


def test_generate_markdown_table_alignment() -> None:
    table = generate_markdown_table(["Name", "Value"], [["Rent", 12], ["Rates", 3]], ["right"])
    assert table == "| Name | Value |\n| ---: | :--- |\n| Rent | 12 |\n| Rates | 3 |\n"
    assert generate_markdown_table(["Name"], []) == ""


def test_format_number() -> None:
    assert format_number(1234.5) == "1,234.50"
    assert format_number(1500, decimals=0, prefix="£") == "£1,500"
    assert format_number(98765.4321, decimals=1, suffix="%", use_commas=False) == "98765.4%"


def test_budget_report_scales_amounts_and_groups_departments() -> None:
    documents = [
        SourceDocument(
            title="budget.txt",
            content="Education budget: £5 billion for 2024. Health budget: 1,200 million in 2024.",
        )
    ]

    report = analyze_budget_data(documents)

    assert report.type is AnalysisType.BUDGET_COMPARISON
    assert report.data["departments"] == ["Education", "Health"]
    assert report.data["years"] == ["2024"]
    assert report.data["budgetData"]["Health"]["2024"]["amount"] == 1_200_000_000
    assert "| Education | £5,000,000,000.00 |" in report.markdown_report
    assert report.summary == "Analysis of budget allocations across 2 departments."


def test_spending_report_ranks_categories() -> None:
    documents = [
        SourceDocument(title="spend.txt", content="Spent on Roads: £300 in 2023. Spent on Parks: £120 in 2023."),
    ]

    report = analyze_spending_data(documents)

    assert report.data["categories"] == ["Roads", "Parks"]
    assert "1. **Roads**: £300.00" in report.markdown_report
    assert "2. **Parks**: £120.00" in report.markdown_report
    assert "the highest spending category is **Roads**" in report.markdown_report


def test_council_tax_analysis_uses_sample_data_when_documents_lack_it(db) -> None:
    report = perform_analysis(
        db,
        "Did Labour councils raise council tax more than Conservative ones?",
        [SourceDocument(title="notes.txt", content="Nothing relevant", id="not-a-uuid")],
    )

    assert report.type is AnalysisType.COUNCIL_TAX
    assert report.data["debug"]["usingSampleData"] is True
    assert report.markdown_report.startswith("## Council Tax Increase Analysis")


def test_general_queries_return_general_report(db) -> None:
    report = perform_analysis(db, "Tell me about the manifesto", [])
    assert report.type is AnalysisType.GENERAL
    assert report.to_dict()["type"] == "general"


def test_documents_from_results_prefers_metadata_id() -> None:
    results = [
        SimpleNamespace(
            document_id="fallback-id",
            document_title="a.txt",
            content="text",
            metadata={"documentId": "meta-id"},
        ),
        SimpleNamespace(document_id="plain-id", document_title="b.txt", content="more", metadata=None),
    ]

    documents = documents_from_results(results)

    assert [document.id for document in documents] == ["meta-id", "plain-id"]
    assert documents[1].metadata == {}


def test_generate_analysis_report_reports_errors(db, monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise ValueError("bad data")

    monkeypatch.setattr(analysis_engine, "perform_analysis", boom)

    assert generate_analysis_report(db, "budget comparison", []) == (
        "## Analysis Error\n\nAn error occurred while analyzing the data: bad data"
    )
