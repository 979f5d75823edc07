"""Retrieval-augmented answers over the uploaded document corpus."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from .analysis_engine import AnalysisType, SourceDocument, detect_analysis_type, generate_analysis_report
from .data_analysis import AnalysisResult, extract_and_analyze_data
from .extraction import AnalysisData, CouncilTaxEntry, extract_council_tax_rows, prepare_data_for_analysis
from .llm import (
    LLMConfigurationError,
    LLMError,
    get_gemini_chat_model,
    get_openai_chat_model,
    is_token_limit_error,
)
from .metrics import record_rag_query, record_token_limit_retry
from .semantic_search import SearchResult, semantic_search

logger = logging.getLogger(__name__)

GEMINI_TOKEN_THRESHOLD = 100_000
OPENAI_TOKEN_LIMIT = 8_000
MAX_CONTEXT_TOKENS = 7_000
MIN_REPORT_LENGTH = 500
COUNCIL_TAX_PROMPT_ROWS = 20

RATE_LIMIT_MESSAGE = (
    "The analysis could not be completed because the documents contain too much text. "
    "Please try a more specific question or upload smaller documents."
)
TRUNCATION_NOTE = "\n\nNote: Document excerpts have been significantly truncated due to length constraints."
REDUCED_CONTEXT_NOTE = "\n\n*Note: Analysis was performed with reduced document context due to length constraints.*"

ANALYSIS_KEYWORDS = (
    "average", "mean", "median", "calculate", "sum", "total", "percentage", "compare",
    "difference", "higher", "lower", "more", "less", "increase", "decrease",
    "trend", "analysis", "statistics", "statistical", "correlation", "relationship",
    "council tax", "raise", "raised", "political control", "labour", "conservative",
    "lib dem", "liberal democrat", "green", "independent", "party", "controlled",
)
GEMINI_ANALYSIS_KEYWORDS = (
    "average", "mean", "median", "calculate", "sum", "total", "percentage", "compare",
    "difference", "higher", "lower", "more", "less", "increase", "decrease",
    "trend", "pattern", "correlation", "relationship", "distribution",
    "statistical", "statistics", "analytics", "metric", "measure",
    "council tax", "tax rate", "budget", "spending", "expenditure",
    "labour", "conservative", "party", "political", "control",
)
COUNCIL_TAX_KEYWORDS = (
    "council tax", "tax increase", "tax rate", "local authority", "political control",
    "labour council", "conservative council", "lib dem council", "raise council tax",
    "council tax comparison", "average council tax",
)

SYSTEM_PREAMBLE = """You are BlueEdge, an advanced AI assistant for the Conservative Research Department.
Your purpose is to analyze political documents and provide factual, data-driven insights.

You will be given a query and relevant excerpts from multiple documents.
Synthesize information from all provided document excerpts to answer the query comprehensively."""

ANALYSIS_INSTRUCTIONS = """

This query requires data analysis. When performing calculations or comparisons:
- Extract all relevant numerical data from the documents
- Perform calculations accurately using all available data, not just sample data
- Show your calculation process step by step
- Present results with proper statistical context
- If comparing entities (e.g., political parties), ensure you use representative samples
- Clearly state your methodology and any limitations in the data

For council tax analysis specifically:
- Match local authorities with their political control
- Calculate averages by political party accurately
- Consider the type of authority (district, unitary, etc.) in your analysis
- Present both the raw data and the calculated averages
- Explain any outliers or anomalies in the data"""

FORMATTING_REQUIREMENTS = """

FORMATTING REQUIREMENTS:
- Present your analysis in clean, well-structured format with clear headings
- Use proper markdown tables with headers and aligned columns when presenting structured data
- Use numbered lists (1. 2. 3.) for sequential items
- Use headings (## and ###) to organize your response clearly
- Keep your analysis concise and focused on the most important insights

Always cite the specific document sources in your answer.
If the documents don't contain sufficient information to answer the query, explain what specific information is missing."""

GEMINI_ANALYSIS_STEPS = """

IMPORTANT ANALYSIS INSTRUCTIONS:
1. Use ALL available data to perform calculations
2. When comparing political parties, ensure you match local authorities with their political control correctly
3. Show your calculation methodology step by step
4. Present raw data in tables where appropriate
5. Provide clear conclusions based on the data"""


def _contains_any(query: str, keywords: Sequence[str]) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in keywords)


def requires_data_analysis(query: str) -> bool:
    return _contains_any(query, ANALYSIS_KEYWORDS)


def is_council_tax_query(query: str) -> bool:
    return _contains_any(query, COUNCIL_TAX_KEYWORDS)


def estimate_token_count(text: str) -> int:
    """Rough estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def truncate_context(context: str, max_tokens: int) -> str:
    """Share ``max_tokens`` between the ``---``-separated excerpts, cutting each ``Content:`` body."""
    if estimate_token_count(context) <= max_tokens:
        return context

    excerpts = [excerpt for excerpt in context.split("---") if excerpt]
    per_excerpt = max_tokens // len(excerpts)

    shortened = []
    for excerpt in excerpts:
        parts = excerpt.split("Content: ")
        if len(parts) < 2:
            shortened.append(excerpt)
            continue
        header = parts[0] + "Content: "
        body = parts[1]
        available = per_excerpt - estimate_token_count(header)
        if estimate_token_count(body) > available:
            shortened.append(header + body[: max(available, 0) * 4] + "... [truncated]")
        else:
            shortened.append(excerpt)
    return "---\n\n".join(shortened)


def system_prompt(needs_analysis: bool) -> str:
    prompt = SYSTEM_PREAMBLE
    if needs_analysis:
        prompt += ANALYSIS_INSTRUCTIONS
    return prompt + FORMATTING_REQUIREMENTS


def _plain(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_context(results: Sequence[SearchResult]) -> str:
    return "\n\n".join(
        f"Document: {result.document_title} ({(result.metadata or {}).get('position') or 'Unknown position'})\n"
        f"Content: {result.content}\n---"
        for result in results
    )


def _numerical_listing(data: AnalysisData) -> str:
    if not data.numerical_data:
        return ""
    section = "\n\nExtracted Numerical Data:\n"
    for item in data.numerical_data:
        section += f'- Value: {_plain(item.value)}, Document: {item.document_title}, Context: "{item.context.strip()}"\n'
    return section


def analysis_prompt_section(data: AnalysisData) -> str:
    section = _numerical_listing(data)
    grouped = data.grouped_entities()
    if grouped:
        section += "\n\nExtracted Entities:\n"
        for entity_type, names in grouped.items():
            section += f"- {entity_type}: {', '.join(names)}\n"
    return section


def _user_message(query: str, context: str, analysis: Optional[AnalysisData]) -> str:
    message = f"Query: {query}\n\nDocument Excerpts:\n{context}"
    if analysis is not None:
        message += analysis_prompt_section(analysis)
    return message


def multi_document_rag(db: Session, query: str, limit: int = 10) -> str:
    results = semantic_search(db, query, limit)
    needs_analysis = requires_data_analysis(query)
    analysis = prepare_data_for_analysis(results) if needs_analysis else None

    context = build_context(results)
    system = system_prompt(needs_analysis)
    user = _user_message(query, context, analysis)

    total_tokens = estimate_token_count(system) + estimate_token_count(user)
    logger.info("Estimated token count: %s", total_tokens)

    try:
        if total_tokens > GEMINI_TOKEN_THRESHOLD:
            gemini = get_gemini_chat_model()
            record_rag_query("gemini")
            try:
                return gemini.complete(system, user, temperature=0.2, max_tokens=2048)
            except LLMError as exc:
                raise LLMError(f"Error using Gemini API: {exc}") from exc

        model = get_openai_chat_model()
        record_rag_query("openai")

        truncated = context
        if total_tokens > OPENAI_TOKEN_LIMIT:
            logger.info("Token count exceeds limit, truncating context")
            truncated = truncate_context(context, MAX_CONTEXT_TOKENS)
            user = _user_message(query, truncated, analysis)

        try:
            return model.complete(system, user, temperature=0.2, max_tokens=1500)
        except Exception as exc:
            if not is_token_limit_error(exc):
                raise
            logger.warning("Hit token limit, reducing context further")
            record_token_limit_retry()
            reduced = truncate_context(truncated, MAX_CONTEXT_TOKENS // 2)
            retry_user = f"Query: {query}\n\nDocument Excerpts:\n{reduced}{TRUNCATION_NOTE}"
            return model.complete(system, retry_user, temperature=0.2, max_tokens=1500) + REDUCED_CONTEXT_NOTE
    except LLMConfigurationError:
        raise
    except Exception as exc:
        logger.exception("Error performing multi-document RAG")
        if "429" in str(exc):
            return RATE_LIMIT_MESSAGE
        raise


def _gemini_context(results: Sequence[SearchResult]) -> str:
    blocks = []
    for result in results:
        metadata = result.metadata or {}
        blocks.append(
            f"Document: {result.document_title} ({metadata.get('position') or 'Unknown position'})\n"
            f"Type: {metadata.get('type') or 'Document'}\n"
            f"Date: {metadata.get('date') or 'Unknown'}\n"
            f"Content: {result.content}\n---"
        )
    return "\n\n".join(blocks)


def _document_type_summary(results: Sequence[SearchResult]) -> str:
    counts: Dict[str, int] = {}
    for result in results:
        kind = (result.metadata or {}).get("type") or "Unknown"
        counts[kind] = counts.get(kind, 0) + 1
    summary = "\n\nDocument Types Summary:\n"
    for kind, count in counts.items():
        summary += f"- {kind}: {count} documents\n"
    return summary


def council_tax_prompt_section(rows: Sequence[CouncilTaxEntry]) -> str:
    if not rows:
        return ""
    labour = [row.percentage_change for row in rows if row.political_control == "Labour"]
    conservative = [row.percentage_change for row in rows if row.political_control == "Conservative"]
    labour_avg = sum(labour) / len(labour) if labour else 0.0
    conservative_avg = sum(conservative) / len(conservative) if conservative else 0.0

    section = "\n\nEXTRACTED COUNCIL TAX DATA:\n"
    section += f"Labour-controlled councils ({len(labour)}): Average increase {labour_avg:.2f}%\n"
    section += f"Conservative-controlled councils ({len(conservative)}): Average increase {conservative_avg:.2f}%\n\n"
    section += "COUNCIL TAX DATA TABLE:\n"
    section += "Authority | Political Control | % Increase | Band D Rate\n"
    section += "--- | --- | --- | ---\n"

    ordered = sorted(rows, key=lambda row: row.political_control != "Labour")
    for row in ordered[:COUNCIL_TAX_PROMPT_ROWS]:
        rate = f"£{row.tax_rate:.2f}" if row.tax_rate > 0 else "N/A"
        section += f"{row.authority} | {row.political_control} | {_plain(row.percentage_change)}% | {rate}\n"
    if len(ordered) > COUNCIL_TAX_PROMPT_ROWS:
        section += f"... and {len(ordered) - COUNCIL_TAX_PROMPT_ROWS} more entries\n"
    return section


def party_comparison_section(results: Sequence[AnalysisResult]) -> str:
    comparisons = [
        result
        for result in results
        if result.type == "group_comparison" and "Labour" in result.description and "Conservative" in result.description
    ]
    if not comparisons:
        return ""

    section = "\n\nADVANCED ANALYSIS RESULTS:\n"
    for result in comparisons:
        labour = result.data.get("Labour")
        conservative = result.data.get("Conservative")
        difference = result.data.get("difference")
        section += f"PARTY COMPARISON: {result.description}\n"
        section += (
            f"- {format(labour['average'], '.2f') if labour else 'N/A'}% average for Labour "
            f"({labour['count'] if labour else 0} councils)\n"
        )
        section += (
            f"- {format(conservative['average'], '.2f') if conservative else 'N/A'}% average for Conservative "
            f"({conservative['count'] if conservative else 0} councils)\n"
        )
        section += f"- Difference: {format(difference, '.2f') if difference is not None else 'N/A'}%\n"
        section += f"- Higher increases by: {result.data.get('higherGroup') or 'N/A'}\n"
        section += f"- Methodology: {result.methodology}\n\n"
    return section


def _entity_listing(data: AnalysisData) -> str:
    section = _numerical_listing(data)
    if data.entities:
        section += "\n\nExtracted Entities:\n"
        for entity in data.entities:
            section += f"- Entity: {entity.entity}, Type: {entity.type}, Document: {entity.document_title}\n"
    return section


def gemini_rag(db: Session, query: str, limit: int = 15) -> Dict[str, Any]:
    """Gemini-backed RAG. Analysis-type queries short-circuit to the analysis engine report."""
    gemini = get_gemini_chat_model()
    if not gemini.is_valid_api_key():
        raise LLMConfigurationError("Gemini API key is invalid. Please check your API key.")

    results = semantic_search(db, query, limit * 2)
    needs_analysis = _contains_any(query, GEMINI_ANALYSIS_KEYWORDS)
    analysis_type = detect_analysis_type(query)

    if analysis_type is not AnalysisType.GENERAL:
        report = generate_analysis_report(db, query, results)
        if report and len(report) > MIN_REPORT_LENGTH:
            record_rag_query("analysis_engine")
            return {
                "response": report,
                "model": gemini.name,
                "success": True,
                "analysisType": analysis_type.value,
            }

    user = f"Query: {query}\n\nDocument Excerpts:\n{_gemini_context(results)}{_document_type_summary(results)}"
    user += GEMINI_ANALYSIS_STEPS

    if needs_analysis:
        data = prepare_data_for_analysis(results)
        user += council_tax_prompt_section(extract_council_tax_rows(results))
        try:
            advanced: List[AnalysisResult] = extract_and_analyze_data(
                [SourceDocument(title=result.document_title, content=result.content) for result in results]
            )
        except Exception:
            logger.exception("Error performing advanced data analysis")
            advanced = []
        user += party_comparison_section(advanced)
        user += _entity_listing(data)

    record_rag_query("gemini")
    response = gemini.complete(system_prompt(needs_analysis), user, temperature=0.1, max_tokens=4096)
    return {
        "response": response,
        "model": gemini.name,
        "success": True,
        "documentCount": len(results),
        "analysisType": "comprehensive" if needs_analysis else "standard",
    }

