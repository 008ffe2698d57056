"""
CLI for paper-evidence.

Commands:
    inline       - Preview a normalized arXiv paper (no index write)
    ingest       - Ingest an arXiv paper into the index
    ingest-pdf   - Ingest an uploaded PDF
    search       - Hybrid search within one paper
    evidence     - Assemble the evidence context for a question
    health       - Check the index backend
    init-schema  - Create missing index classes
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table as RichTable
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import get_settings
from ..src.errors import FetchError, IndexBackendError, PaperEvidenceError

app = typer.Typer(
    name="paper-evidence",
    help="Scholarly paper ingest, hybrid retrieval and evidence assembly",
)
console = Console()
logger = logging.getLogger("paper_evidence")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Debug logging"),
):
    """Configure logging for every command."""
    level = "DEBUG" if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def with_fetch_retry(func):
    """Retry a coroutine function on fetch failures."""
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(FetchError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying {func.__name__} after {retry_state.outcome.exception()}"
        ),
    )(func)


def _print_chunks(title: str, chunks, show_text: bool) -> None:
    if not chunks:
        return
    rprint(f"\n[bold]{title}[/bold]")
    for i, chunk in enumerate(chunks, 1):
        score = f"{chunk.score:.4f}" if chunk.score is not None else "-"
        page = chunk.page_number if chunk.page_number is not None else "-"
        rprint(f"[bold]{i}.[/bold] {chunk.chunk_id} | Score: {score} | Page: {page}")
        if chunk.section:
            rprint(f"   Section: {chunk.section}")
        if show_text:
            text = chunk.text[:500]
            if len(chunk.text) > 500:
                text += "..."
            rprint(f"   [dim]{text}[/dim]")


@app.command()
def inline(
    target: str = typer.Argument(..., help="arXiv id, URL or DOI"),
):
    """
    Fetch and normalize an arXiv paper without writing to the index.

    Examples:
        paper-evidence inline 1706.03762
        paper-evidence inline https://arxiv.org/abs/1706.03762v7
    """
    from ..src.fetchers import ArxivClient
    from ..src.ingest import ingest_arxiv_inline

    @with_fetch_retry
    async def run():
        async with ArxivClient.from_settings(get_settings()) as client:
            return await ingest_arxiv_inline(target, client)

    try:
        result = asyncio.run(run())
    except (ValueError, PaperEvidenceError) as e:
        rprint(f"[red]Inline ingest failed: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"\n[green]{result.title}[/green] ({result.arxiv_id})")
    rprint(f"  Authors: {', '.join(result.authors) or '-'}")
    rprint(f"  Categories: {', '.join(result.categories) or '-'}")
    rprint(f"  Source: {result.source_url}")

    table = RichTable(title="Sections")
    table.add_column("Section ID", style="cyan")
    table.add_column("Title")
    table.add_column("Level", justify="right")
    table.add_column("Paragraphs", justify="right")
    for section in result.sections:
        table.add_row(section.section_id, section.title, str(section.level), str(len(section.paragraphs)))
    console.print(table)
    rprint(f"  Figures: {len(result.figures)}  Citations: {len(result.citations)}")


@app.command()
def ingest(
    target: str = typer.Argument(..., help="arXiv id, URL or DOI"),
):
    """
    Ingest an arXiv paper into the configured index.

    Sources are tried in order: GROBID TEI (when GROBID_URL is set),
    ar5iv / arXiv HTML, then PDF page text.
    """
    from ..src.fetchers import ArxivClient
    from ..src.index import create_backend
    from ..src.index_manager import IndexManager
    from ..src.ingest import ingest_arxiv_paper

    settings = get_settings()

    @with_fetch_retry
    async def run():
        async with create_backend(settings) as backend, ArxivClient.from_settings(settings) as client:
            return await ingest_arxiv_paper(target, client, IndexManager(backend), settings)

    try:
        result = asyncio.run(run())
    except (ValueError, PaperEvidenceError) as e:
        rprint(f"[red]Ingest failed: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"\n[green]✓ Ingested:[/green] {result.paper_id} (from {result.source})")
    if result.paper is not None:
        rprint(f"  Title: {result.paper.title}")
    rprint(f"  Sections: {result.num_sections}")
    rprint(f"  Chunks: {result.num_chunks}")
    rprint(f"  Figures: {result.num_figures}")
    rprint(f"  Citations: {result.num_citations}")


@app.command("ingest-pdf")
def ingest_pdf(
    pdf_path: Path = typer.Argument(..., help="Path to PDF file"),
    paper_id: str = typer.Option(..., "--paper-id", "-p", help="Paper ID to store the chunks under"),
):
    """
    Ingest an uploaded PDF through pdfplumber page text.

    Examples:
        paper-evidence ingest-pdf ./attention.pdf --paper-id upload-42
    """
    from ..src.index import create_backend
    from ..src.index_manager import IndexManager
    from ..src.ingest import ingest_pdf_file

    if not pdf_path.exists():
        rprint(f"[red]File not found: {pdf_path}[/red]")
        raise typer.Exit(1)

    settings = get_settings()

    async def run():
        async with create_backend(settings) as backend:
            return await ingest_pdf_file(paper_id, pdf_path, IndexManager(backend), settings)

    try:
        result = asyncio.run(run())
    except (ValueError, PaperEvidenceError) as e:
        rprint(f"[red]Ingest failed: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"\n[green]✓ Ingested:[/green] {result.paper_id}")
    rprint(f"  Pages: {result.num_sections}")
    rprint(f"  Chunks: {result.num_chunks}")
    rprint(f"  Figures: {result.num_figures}")


@app.command()
def search(
    paper_id: str = typer.Argument(..., help="Paper ID to search"),
    query: str = typer.Argument(..., help="Search query"),
    limit: Optional[int] = typer.Option(None, "--limit", "-k", help="Number of hits"),
    page_window: Optional[int] = typer.Option(None, "--page-window", "-w", help="Neighbouring pages to include"),
    alpha: Optional[float] = typer.Option(None, "--alpha", "-a", help="Vector weight, 0 (keyword) to 1 (vector)"),
    show_text: bool = typer.Option(True, "--show-text/--hide-text", help="Show chunk text"),
):
    """
    Hybrid search within one paper.

    Examples:
        paper-evidence search 1706.03762 "multi-head attention"
        paper-evidence search 1706.03762 "BLEU" --alpha 0 --page-window 0
    """
    from ..src.index import create_backend
    from ..src.retrieval import HybridRetriever

    settings = get_settings()

    async def run():
        async with create_backend(settings) as backend:
            retriever = HybridRetriever.from_settings(backend, settings)
            return await retriever.search(
                paper_id, query, limit=limit, page_window=page_window, alpha=alpha
            )

    rprint(f"\nSearching: [cyan]{query}[/cyan] in {paper_id}")
    try:
        result = asyncio.run(run())
    except (ValueError, PaperEvidenceError) as e:
        rprint(f"[red]Search failed: {e}[/red]")
        raise typer.Exit(1)

    if result.is_degraded:
        rprint(f"[yellow]Degraded: {result.degraded}[/yellow]")
    if not result.hits:
        rprint("[yellow]No results found[/yellow]")
        return

    _print_chunks(f"Hits ({len(result.hits)})", result.hits, show_text)
    _print_chunks(f"Window ({len(result.expanded_window)})", result.expanded_window, show_text)


@app.command()
def evidence(
    paper_id: str = typer.Argument(..., help="Paper ID"),
    query: str = typer.Argument("", help="Question"),
    selection: Optional[str] = typer.Option(None, "--selection", "-s", help="Selected text"),
    page: Optional[int] = typer.Option(None, "--page", help="Page of the selection"),
    section: Optional[str] = typer.Option(None, "--section", help="Section of the selection"),
    enrich: bool = typer.Option(False, "--enrich", help="Enrich arXiv citations with abstracts"),
    as_json: bool = typer.Option(False, "--json", help="Print the evidence context as JSON"),
):
    """
    Assemble the evidence context for a question or a selection.

    Examples:
        paper-evidence evidence 1706.03762 "Why scale the dot products?"
        paper-evidence evidence 1706.03762 --selection "scaled dot-product attention" --page 4
    """
    from ..src.evidence import load_question_evidence
    from ..src.fetchers import ArxivClient
    from ..src.index import create_backend

    settings = get_settings()
    raw_selection = {"text": selection, "page": page, "section": section}

    async def run():
        async with create_backend(settings) as backend, ArxivClient.from_settings(settings) as client:
            return await load_question_evidence(
                paper_id,
                query,
                raw_selection,
                backend=backend,
                settings=settings,
                metadata_fetcher=client if enrich else None,
            )

    try:
        context = asyncio.run(run())
    except (ValueError, PaperEvidenceError) as e:
        rprint(f"[red]Evidence failed: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(context.model_dump_json())
        return

    if context.degraded:
        rprint(f"[yellow]Degraded: {context.degraded_reason}[/yellow]")
    _print_chunks(f"Hits ({len(context.hits)})", context.hits, show_text=True)
    _print_chunks(f"Window ({len(context.expanded_window)})", context.expanded_window, show_text=False)

    if context.figures:
        table = RichTable(title="Figures")
        table.add_column("Figure ID", style="cyan")
        table.add_column("Page", justify="right")
        table.add_column("Caption")
        for figure in context.figures:
            table.add_row(figure.figure_id, str(figure.page_number or "-"), figure.caption[:80])
        console.print(table)

    if context.citations:
        table = RichTable(title="Citations")
        table.add_column("Citation ID", style="cyan")
        table.add_column("Year", justify="right")
        table.add_column("Title")
        for citation in context.citations:
            table.add_row(citation.citation_id, str(citation.year or "-"), citation.title or "-")
        console.print(table)


@app.command()
def health():
    """Check that the index backend is reachable and ready."""
    from ..src.index import create_backend

    settings = get_settings()

    async def run():
        async with create_backend(settings) as backend:
            await backend.verify_connection()
            return backend.name

    try:
        name = asyncio.run(run())
    except (ValueError, IndexBackendError) as e:
        logger.error(f"Health check failed: {e}")
        rprint(f"[red]✗ Index unavailable: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]✓ {name} index is ready[/green]")


@app.command("init-schema")
def init_schema():
    """Create any missing index classes. Safe to run repeatedly."""
    from ..src.index import create_backend
    from ..src.index_manager import IndexManager

    settings = get_settings()

    async def run():
        async with create_backend(settings) as backend:
            return await IndexManager(backend).ensure_schema()

    try:
        created = asyncio.run(run())
    except (ValueError, IndexBackendError) as e:
        rprint(f"[red]Schema setup failed: {e}[/red]")
        raise typer.Exit(1)

    if created:
        rprint(f"[green]Created classes:[/green] {', '.join(created)}")
    else:
        rprint("[green]Schema already up to date[/green]")


if __name__ == "__main__":
    app()
