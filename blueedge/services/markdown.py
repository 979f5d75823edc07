from __future__ import annotations

import re

from .conversion import SPREADSHEET_TYPES, WORD_TYPES, file_type

PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
HEADING_PREFIX = re.compile(
    r"^(summary|introduction|conclusion|overview|background|methodology|results|findings|recommendations|appendix|section)",
    re.IGNORECASE,
)
LIST_ITEM = re.compile(r"^[*\-\d.)\]]+\s")

SPREADSHEET_LABELS = {
    "ods": "OpenDocument Spreadsheet",
    "xls": "Excel Spreadsheet",
    "xlsx": "Excel Spreadsheet",
}


def title_from_filename(filename: str) -> str:
    title = re.sub(r"\.[^/.]+$", "", filename or "")
    title = re.sub(r"[_-]", " ", title)
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), title)


def _is_heading(paragraph: str) -> bool:
    words = paragraph.split()
    if len(words) <= 5 and (paragraph.endswith(":") or paragraph == paragraph.upper()):
        return True
    return bool(HEADING_PREFIX.match(paragraph))


def format_text_content(content: str, title: str) -> str:
    """Render plain text as markdown, promoting short shouty lines to headings."""
    markdown = f"# {title}\n\n"
    in_list = False

    for raw in PARAGRAPH_SPLIT.split(content):
        paragraph = raw.strip()
        if not paragraph:
            continue

        if _is_heading(paragraph):
            heading = paragraph[:-1] if paragraph.endswith(":") else paragraph
            markdown += f"\n## {heading}\n\n"
            in_list = False
        elif LIST_ITEM.match(paragraph) or (in_list and len(paragraph) < 200):
            if not in_list:
                markdown += "\n"
            markdown += f"{paragraph}\n"
            in_list = True
        else:
            markdown += f"{paragraph}\n\n"
            in_list = False

    return markdown


def csv_to_markdown(csv_content: str) -> str:
    lines = csv_content.strip().split("\n")
    headers = lines[0].split(",")

    markdown = "# CSV Data\n\n"
    markdown += "| " + " | ".join(headers) + " |\n"
    markdown += "| " + " | ".join("---" for _ in headers) + " |\n"
    for line in lines[1:]:
        markdown += "| " + " | ".join(line.split(",")) + " |\n"
    return markdown


def _spreadsheet_to_markdown(content: str, title: str, label: str) -> str:
    markdown = f"# {title}\n\n> Document Type: {label}\n\n"
    for sheet in content.split("## Sheet:")[1:]:
        sheet = sheet.strip()
        name, _, data = sheet.partition("\n")
        markdown += f"## Sheet: {name.strip()}\n\n{csv_to_markdown(data.strip())}\n\n"
    return markdown


def convert_to_markdown(filename: str, content: str) -> str:
    kind = file_type(filename)
    title = title_from_filename(filename)

    if kind in WORD_TYPES:
        formatted = format_text_content(content, title)
        body = formatted[formatted.index("\n\n") + 2 :]
        return f"# {title}\n\n> Document Type: Microsoft Word Document\n\n{body}"
    if kind == "csv":
        return csv_to_markdown(content)
    if kind in SPREADSHEET_TYPES:
        return _spreadsheet_to_markdown(content, title, SPREADSHEET_LABELS[kind])
    return format_text_content(content, title)
