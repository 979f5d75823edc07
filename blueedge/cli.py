from __future__ import annotations

import typer

from .db.session import SessionLocal
from .services.council_tax import generate_council_tax_report
from .services.semantic_search import process_all_documents, semantic_search

app = typer.Typer(help="BlueEdge document analysis administrative CLI")


@app.command()
def process_all() -> None:
    """Rebuild chunks and embeddings for every stored document."""
    db = SessionLocal()
    try:
        count = process_all_documents(db)
        typer.echo(f"Processed {count} documents for vector search")
    finally:
        db.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Natural-language search query"),
    limit: int = typer.Option(5, "--limit", "-n", show_default=True, help="Number of chunks to return"),
) -> None:
    """Print the chunks most similar to QUERY."""
    db = SessionLocal()
    try:
        for result in semantic_search(db, query, limit):
            typer.echo(f"[{result.similarity:.3f}] {result.document_title} ({result.metadata.get('position', '?')})")
            typer.echo(result.content[:200].replace("\n", " "))
            typer.echo("")
    finally:
        db.close()


@app.command()
def council_tax_report(
    sample: bool = typer.Option(True, "--sample/--no-sample", help="Fall back to sample data when nothing is found"),
) -> None:
    """Print the Labour vs Conservative council tax report."""
    db = SessionLocal()
    try:
        typer.echo(generate_council_tax_report(db, use_sample_if_empty=sample))
    finally:
        db.close()


if __name__ == "__main__":
    app()
