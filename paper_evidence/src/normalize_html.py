"""
ar5iv HTML normalization.

Turns LaTeXML-rendered HTML (ar5iv, arxiv.org/html) into ordered sections,
figures and bibliography citations.

Structure expected:
    article.ltx_document
      div.ltx_abstract            → "Abstract" section
      section#S1 (h2 title)       → section, level from heading depth
        div.ltx_para > p          → paragraphs
          a[href="#S3.F1"]        → figure reference
          cite > a[href="#bib.bib5"] → citation reference
      figure.ltx_figure / ltx_table → figures (caption required)
      li.ltx_bibitem              → citations

Pure: parses a string, no network access.
"""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .arxiv_ids import extract_arxiv_id
from .errors import EmptyDocumentError
from .schemas.paper import (
    Citation,
    Figure,
    NormalizedDocument,
    Paragraph,
    Section,
    normalize_whitespace,
)

logger = logging.getLogger(__name__)

ROOT_SELECTOR = "article#document, article.ltx_document, article#ltx_document"
FIGURE_SELECTOR = "figure, div.ltx_figure, div.figure"
PARAGRAPH_SELECTOR = ":scope > p, :scope > div.ltx_para > p"
HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")

# Internal anchors that point at figures/tables rather than sections or equations
FIGURE_TARGET_PATTERN = re.compile(r"(^fig|^tab|\.F\d+|\.T\d+)", re.IGNORECASE)
CITATION_TARGET_PATTERN = re.compile(r"^bib", re.IGNORECASE)
YEAR_PATTERN = re.compile(r"\b(19[5-9]\d|20\d\d)\b")
DOI_PATTERN = re.compile(r"\b(10\.\d{4,9}/[^\s\"<>]+)", re.IGNORECASE)


def _clamp_level(level: int) -> int:
    return max(1, min(6, level))


def _find_heading(section: Tag) -> Optional[Tag]:
    for child in section.find_all(True, recursive=False):
        if child.name in HEADING_TAGS:
            return child
        if child.name == "header":
            heading = child.find(list(HEADING_TAGS))
            if heading is not None:
                return heading
    return None


def _heading_level(section: Tag, heading: Optional[Tag]) -> int:
    if heading is not None and heading.name in HEADING_TAGS:
        return _clamp_level(int(heading.name[1]))
    depth = section.get("data-depth")
    if depth is not None and str(depth).isdigit():
        return _clamp_level(int(depth) + 1)
    return 1


def _resolve_image_url(src: Optional[str], base_url: Optional[str]) -> Optional[str]:
    if not src or src.startswith("data:"):
        return None
    if urlparse(src).scheme in ("http", "https"):
        return src
    if src.startswith("//"):
        return f"https:{src}"
    if not base_url:
        return None
    return urljoin(base_url if base_url.endswith("/") else f"{base_url}/", src)


def _replace_math(soup: BeautifulSoup) -> None:
    """Replace MathML with its TeX alt text so paragraph text stays readable."""
    for math in soup.find_all("math"):
        math.replace_with(f" {math.get('alttext', '')} ")


def _classify_refs(
    node: Tag,
    figure_ids: set[str],
    citation_ids: set[str],
) -> tuple[list[str], list[str]]:
    """Split a paragraph's anchors into (citation_ids, figure_ids), first-seen order."""
    cites: list[str] = []
    figs: list[str] = []
    for anchor in node.find_all("a", href=True):
        href = anchor["href"].strip()
        if href.startswith("#"):
            target = href[1:]
            if not target:
                continue
            if target in figure_ids or FIGURE_TARGET_PATTERN.search(target):
                if target not in figs:
                    figs.append(target)
            elif target in citation_ids or CITATION_TARGET_PATTERN.search(target):
                if target not in cites:
                    cites.append(target)
        elif href.startswith(("http://", "https://")) and anchor.find_parent("cite"):
            if href not in cites:
                cites.append(href)
    return cites, figs


def _parse_figures(root: Tag, base_url: Optional[str]) -> list[Figure]:
    figures: list[Figure] = []
    seen: set[str] = set()
    for index, node in enumerate(root.select(FIGURE_SELECTOR), start=1):
        figure_id = node.get("id") or f"figure-{index}"
        if figure_id in seen:
            continue

        # A figure's own caption sits beside its subfigure panels, not inside them
        caption_node = (
            node.find("figcaption", recursive=False)
            or node.find(class_=["ltx_caption", "caption"], recursive=False)
            or node.find("figcaption")
            or node.select_one(".ltx_caption, .caption")
        )
        if caption_node is None:
            continue

        label = None
        caption = normalize_whitespace(caption_node.get_text(" "))
        tag_node = caption_node.select_one(".ltx_tag")
        if tag_node is not None:
            tag_text = normalize_whitespace(tag_node.get_text(" "))
            label = tag_text.rstrip(":.").strip() or None
            if caption.startswith(tag_text):
                caption = caption[len(tag_text):].lstrip(" :.")
        if not caption:
            continue

        img = node.find("img")
        image_url = _resolve_image_url(img.get("src") if img else None, base_url)

        seen.add(figure_id)
        figures.append(Figure(
            figure_id=figure_id,
            label=label,
            caption=caption,
            image_url=image_url,
        ))
    return figures


def _split_authors(value: str) -> list[str]:
    value = re.sub(r"\bet al\.?", "", value)
    parts = re.split(r",\s*(?:and\s+)?|\s+and\s+", value)
    return [p.strip(" .") for p in parts if p.strip(" .")]


def _parse_bibliography(root: Tag) -> list[Citation]:
    citations: list[Citation] = []
    for index, item in enumerate(root.select("li.ltx_bibitem"), start=1):
        citation_id = item.get("id") or f"bib-{index}"
        tag_node = item.select_one(".ltx_tag")
        if tag_node is not None:
            tag_node.extract()

        blocks = [
            normalize_whitespace(b.get_text(" "))
            for b in item.select(".ltx_bibblock")
        ]
        blocks = [b for b in blocks if b]
        raw = normalize_whitespace(item.get_text(" "))
        if not raw:
            continue

        authors = _split_authors(blocks[0]) if len(blocks) > 1 else []
        title = blocks[1].rstrip(".") if len(blocks) > 1 else raw
        source = blocks[2] if len(blocks) > 2 else None

        url = None
        for anchor in item.find_all("a", href=True):
            if anchor["href"].startswith(("http://", "https://")):
                url = anchor["href"]
                break

        year_match = YEAR_PATTERN.search(raw)
        doi_match = DOI_PATTERN.search(raw)
        haystack = f"{raw} {url or ''}"
        citations.append(Citation(
            citation_id=citation_id,
            title=title or None,
            authors=authors,
            year=int(year_match.group(1)) if year_match else None,
            source=source,
            doi=doi_match.group(1).rstrip(".,") if doi_match else None,
            url=url,
            arxiv_id=extract_arxiv_id(haystack) if "arxiv" in haystack.lower() else None,
        ))
    return citations


def _parse_paragraphs(
    section: Tag,
    section_id: str,
    figure_ids: set[str],
    citation_ids: set[str],
) -> list[Paragraph]:
    paragraphs: list[Paragraph] = []
    for node in section.select(PARAGRAPH_SELECTOR):
        text = normalize_whitespace(node.get_text(" "))
        if not text:
            continue
        cites, figs = _classify_refs(node, figure_ids, citation_ids)
        paragraphs.append(Paragraph(
            paragraph_id=f"{section_id}-p{len(paragraphs) + 1}",
            text=text,
            citation_ids=cites,
            figure_ids=figs,
        ))
    return paragraphs


def _parse_abstract(root: Tag) -> Optional[Section]:
    node = root.select_one("div.ltx_abstract, section.ltx_abstract")
    if node is None:
        return None
    texts = [normalize_whitespace(p.get_text(" ")) for p in node.find_all("p")]
    paragraphs = [
        Paragraph(paragraph_id=f"abstract-p{i}", text=t)
        for i, t in enumerate((t for t in texts if t), start=1)
    ]
    if not paragraphs:
        return None
    return Section(section_id="abstract", title="Abstract", level=1, paragraphs=paragraphs)


def parse_ar5iv_html(html: str, base_url: Optional[str] = None) -> NormalizedDocument:
    """
    Normalize ar5iv HTML into sections, figures and citations.

    Args:
        html: Raw HTML document
        base_url: Base for resolving relative image URLs; relative images
            stay unresolved (image_url=None) when omitted

    Returns:
        NormalizedDocument in document order

    Raises:
        EmptyDocumentError: If no section with a title and paragraphs is found
    """
    soup = BeautifulSoup(html or "", "html.parser")
    _replace_math(soup)
    root = soup.select_one(ROOT_SELECTOR) or soup.body or soup

    figures = _parse_figures(root, base_url)
    citations = _parse_bibliography(root)
    figure_ids = {f.figure_id for f in figures}
    citation_ids = {c.citation_id for c in citations}

    sections: list[Section] = []
    abstract = _parse_abstract(root)
    if abstract is not None:
        sections.append(abstract)

    for index, node in enumerate(root.find_all("section"), start=1):
        classes = node.get("class") or []
        if "ltx_bibliography" in classes or "ltx_abstract" in classes:
            continue
        heading = _find_heading(node)
        title = normalize_whitespace(heading.get_text(" ")) if heading is not None else ""
        if not title:
            continue

        section_id = node.get("id") or f"section-{index}"
        paragraphs = _parse_paragraphs(node, section_id, figure_ids, citation_ids)
        if not paragraphs:
            continue

        sections.append(Section(
            section_id=section_id,
            title=title,
            level=_heading_level(node, heading),
            paragraphs=paragraphs,
        ))

    if not sections:
        raise EmptyDocumentError("No sections with body text found in HTML")

    logger.debug(
        f"Parsed HTML: {len(sections)} sections, {len(figures)} figures, "
        f"{len(citations)} citations"
    )
    return NormalizedDocument(sections=sections, figures=figures, citations=citations)
