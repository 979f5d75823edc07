from __future__ import annotations

import pytest

from blueedge.services import council_tax
from blueedge.services.council_tax import (
    analyze_council_tax_data,
    analyze_council_tax_data_with_fallback,
    generate_council_tax_report,
    parse_council_tax_table,
    parse_political_control,
    render_council_tax_report,
)

CONTROL_CSV = "Authority,Party\nManchester,Labour\nSurrey,Conservative\nKent,Tory\nBristol,Green"
TAX_TABLE = (
    "Manchester Metropolitan District 4.99%\n"
    "Surrey County Council 3.99% £2050\n"
    "Kent County Council 2.99%\n"
    "Leeds City 4.50%"
)


def test_parse_political_control_skips_header_and_other_parties() -> None:
    assert parse_political_control(CONTROL_CSV) == {
        "manchester": "Labour",
        "surrey": "Conservative",
        "kent": "Conservative",
    }


def test_parse_council_tax_table_strips_authority_words() -> None:
    control = parse_political_control(CONTROL_CSV)

    entries = parse_council_tax_table(TAX_TABLE, control)

    assert [(entry.authority, entry.political_control, entry.percentage_change) for entry in entries] == [
        ("Manchester", "Labour", 4.99),
        ("Surrey", "Conservative", 3.99),
        ("Kent", "Conservative", 2.99),
        ("Leeds City", "Unknown", 4.5),
    ]
    assert entries[0].authority_type == "Metropolitan District"
    assert entries[1].authority_type == "Shire County"
    assert entries[1].tax_rate == 2050.0
    assert all(entry.year == "2025-2026" for entry in entries)


def test_blank_currency_cell_leaves_tax_rate_unset() -> None:
    entries = parse_council_tax_table("Manchester Council 4.99% £,", {"manchester": "Labour"})

    assert [(entry.authority, entry.political_control, entry.percentage_change, entry.tax_rate) for entry in entries] == [
        ("Manchester", "Labour", 4.99, 0.0)
    ]


def test_analyze_council_tax_data_reads_documents_by_title(db, make_document) -> None:
    make_document(title="Political Control 2025.csv", content=CONTROL_CSV)
    make_document(title="Council Tax Table.csv", content=TAX_TABLE)

    summary = analyze_council_tax_data(db)

    assert summary.labour_count == 1
    assert summary.conservative_count == 2
    assert summary.labour_average == pytest.approx(4.99)
    assert summary.conservative_average == pytest.approx(3.49)
    assert summary.difference == pytest.approx(1.5)
    assert summary.higher_party == "Labour"
    assert summary.debug["politicalControlFound"] is True
    assert summary.debug["totalEntriesExtracted"] == 4


def test_fallback_uses_sample_data_when_nothing_found(db, make_document) -> None:
    make_document(title="minutes.txt", content="No figures here.")

    summary = analyze_council_tax_data_with_fallback(db)

    assert summary.using_sample_data
    assert summary.debug["realDocumentsAnalyzed"] == 1
    assert summary.labour_count == 3
    assert summary.labour_average == pytest.approx(4.8633, abs=1e-3)
    assert summary.conservative_average == pytest.approx(3.7467, abs=1e-3)


def test_fallback_can_be_disabled(db) -> None:
    summary = analyze_council_tax_data_with_fallback(db, use_sample_if_empty=False)

    assert not summary.using_sample_data
    assert summary.council_data == []
    assert "Insufficient data to draw a conclusion" in render_council_tax_report(summary)


def test_report_lists_labour_first_and_breaks_down_by_type(db, make_document) -> None:
    make_document(title="Political Control 2025.csv", content=CONTROL_CSV)
    make_document(title="Council Tax Table.csv", content=TAX_TABLE)

    report = render_council_tax_report(analyze_council_tax_data(db))

    assert report.startswith("## Council Tax Increase Analysis: Labour vs. Conservative (2025-2026)")
    assert "Based on the analysis of 3 local authorities" in report
    rows = [line for line in report.splitlines() if "| Labour |" in line or "| Conservative |" in line]
    assert rows == [
        "| Manchester | Labour | 4.99% | Metropolitan District |",
        "| Surrey | Conservative | 3.99% | Shire County |",
        "| Kent | Conservative | 2.99% | Shire County |",
    ]
    assert "**Shire County**:\n- Labour (0): 0.00%\n- Conservative (2): 3.49%" in report
    assert "Leeds City" not in report
    assert "**Labour**-controlled councils raised council tax more" in report


def test_generate_report_returns_message_on_failure(db, monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise RuntimeError("database offline")

    monkeypatch.setattr(council_tax, "analyze_council_tax_data_with_fallback", boom)

    assert generate_council_tax_report(db) == (
        "Error generating council tax report. Please check the data and try again."
    )
