"""Normalize GROBID TEI XML into sections, figures and citations."""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional

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

TEI_NS = {"tei": "http://www.tei-c.org/ns/1.0"}
XML_ID = "{http://www.w3.org/XML/1998/namespace}id"

YEAR_PATTERN = re.compile(r"(\d{4})")


def _local(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _collect_text(el: Optional[ET.Element]) -> str:
    if el is None:
        return ""
    return normalize_whitespace("".join(el.itertext()))


def _first_page(el: ET.Element) -> Optional[int]:
    """Page of the first coordinate box ("page,x,y,w,h;...") on el or its children."""
    for node in el.iter():
        coords = node.get("coords")
        if not coords:
            continue
        head = coords.split(";", 1)[0].split(",", 1)[0].strip()
        if head.isdigit() and int(head) >= 1:
            return int(head)
    return None


def _section_level(head: ET.Element) -> int:
    number = (head.get("n") or "").strip(". ")
    if not number:
        return 1
    return max(1, min(6, len([part for part in number.split(".") if part])))


def _ref_targets(el: ET.Element, ref_type: str) -> list[str]:
    targets: list[str] = []
    for ref in el.iter(f"{{{TEI_NS['tei']}}}ref"):
        if ref.get("type") != ref_type:
            continue
        target = (ref.get("target") or "").lstrip("#")
        if target and target not in targets:
            targets.append(target)
    return targets


def _parse_figures(root: ET.Element) -> list[Figure]:
    figures: list[Figure] = []
    for index, el in enumerate(root.iterfind(".//tei:text//tei:figure", TEI_NS), start=1):
        caption = _collect_text(el.find("tei:figDesc", TEI_NS))
        if not caption:
            continue
        kind = "Table" if el.get("type") == "table" else "Figure"
        label_text = _collect_text(el.find("tei:label", TEI_NS))
        head = _collect_text(el.find("tei:head", TEI_NS)).rstrip(":.")
        label = f"{kind} {label_text}" if label_text else (head or None)
        figures.append(Figure(
            figure_id=el.get(XML_ID) or f"figure-{index}",
            label=label,
            caption=caption,
            page_number=_first_page(el),
        ))
    return figures


def _person_name(pers: ET.Element) -> str:
    parts = [_collect_text(n) for n in pers.findall("tei:forename", TEI_NS)]
    parts.append(_collect_text(pers.find("tei:surname", TEI_NS)))
    return " ".join(p for p in parts if p)


def _parse_bibliography(root: ET.Element) -> list[Citation]:
    citations: list[Citation] = []
    for index, bib in enumerate(root.iterfind(".//tei:listBibl/tei:biblStruct", TEI_NS), start=1):
        title = (
            _collect_text(bib.find("tei:analytic/tei:title", TEI_NS))
            or _collect_text(bib.find("tei:monogr/tei:title", TEI_NS))
        )
        source = None
        if bib.find("tei:analytic/tei:title", TEI_NS) is not None:
            source = _collect_text(bib.find("tei:monogr/tei:title", TEI_NS)) or None

        authors = [
            name for name in (
                _person_name(p) for p in bib.iterfind(".//tei:author/tei:persName", TEI_NS)
            ) if name
        ]

        year = None
        date = bib.find(".//tei:imprint/tei:date", TEI_NS)
        if date is not None:
            match = YEAR_PATTERN.search(date.get("when") or _collect_text(date))
            year = int(match.group(1)) if match else None

        doi = None
        arxiv_id = None
        for idno in bib.iterfind(".//tei:idno", TEI_NS):
            kind = (idno.get("type") or "").lower()
            if kind == "doi":
                doi = _collect_text(idno) or None
            elif kind == "arxiv":
                arxiv_id = extract_arxiv_id(_collect_text(idno))

        ptr = bib.find(".//tei:ptr", TEI_NS)
        citations.append(Citation(
            citation_id=bib.get(XML_ID) or f"b{index - 1}",
            title=title or None,
            authors=authors,
            year=year,
            source=source,
            doi=doi,
            url=ptr.get("target") if ptr is not None else None,
            arxiv_id=arxiv_id,
        ))
    return citations


def parse_grobid_tei(xml_text: str) -> NormalizedDocument:
    """
    Normalize GROBID TEI.

    Body divisions with a head become sections; a division without a head
    continues the previous section. Paragraph pages come from GROBID's
    ``coords`` attributes when TEI coordinates were requested.

    Raises:
        EmptyDocumentError: If the body holds no paragraphs
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise EmptyDocumentError(f"Invalid TEI XML: {exc}") from exc

    sections: list[Section] = []
    abstract = root.find(".//tei:teiHeader/tei:profileDesc/tei:abstract", TEI_NS)
    if abstract is not None:
        texts = [_collect_text(p) for p in abstract.iterfind(".//tei:p", TEI_NS)]
        paragraphs = [
            Paragraph(paragraph_id=f"abstract-p{i}", text=t)
            for i, t in enumerate((t for t in texts if t), start=1)
        ]
        if paragraphs:
            sections.append(Section(section_id="abstract", title="Abstract", paragraphs=paragraphs))

    body = root.find(".//tei:text/tei:body", TEI_NS)
    divs = body.findall("tei:div", TEI_NS) if body is not None else []
    for index, div in enumerate(divs, start=1):
        head = div.find("tei:head", TEI_NS)
        title = _collect_text(head)
        if title or not sections or sections[-1].section_id == "abstract":
            section = Section(
                section_id=f"tei-s{index}",
                title=title or "Body",
                level=_section_level(head) if head is not None else 1,
            )
            sections.append(section)
        else:
            section = sections[-1]

        for p in div.findall("tei:p", TEI_NS):
            text = _collect_text(p)
            if not text:
                continue
            section.paragraphs.append(Paragraph(
                paragraph_id=f"{section.section_id}-p{len(section.paragraphs) + 1}",
                text=text,
                page_number=_first_page(p),
                citation_ids=_ref_targets(p, "bibr"),
                figure_ids=_ref_targets(p, "figure") + _ref_targets(p, "table"),
            ))

    sections = [s for s in sections if s.paragraphs]
    if not sections:
        raise EmptyDocumentError("No body paragraphs found in TEI")

    figures = _parse_figures(root)
    citations = _parse_bibliography(root)
    logger.debug(
        f"Parsed TEI: {len(sections)} sections, {len(figures)} figures, "
        f"{len(citations)} citations"
    )
    return NormalizedDocument(sections=sections, figures=figures, citations=citations)
