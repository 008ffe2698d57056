"""
arXiv identifier parsing.

Accepts the forms people actually paste:
    arXiv:1706.03762v5
    https://arxiv.org/abs/1706.03762
    https://arxiv.org/pdf/1706.03762v2.pdf
    10.48550/arXiv.1706.03762
    hep-th/9901001
    1706.03762
and normalizes them to the version-less identifier.
"""

import re
from typing import Optional

ARXIV_PREFIX_PATTERN = re.compile(r"arxiv[:\s]+(\d{4}\.\d{4,5}(?:v\d+)?)", re.IGNORECASE)
ARXIV_URL_PATTERN = re.compile(
    r"arxiv\.org/(?:abs|pdf|html)/([a-z\-]+(?:\.[A-Z]{2})?/\d{7}|\d{4}\.\d{4,5})(?:v\d+)?",
    re.IGNORECASE,
)
ARXIV_DOI_PATTERN = re.compile(r"10\.48550/arxiv\.(\d{4}\.\d{4,5})(?:v\d+)?", re.IGNORECASE)
OLD_STYLE_PATTERN = re.compile(r"\b([a-z\-]+(?:\.[A-Z]{2})?/\d{7})(?:v\d+)?\b", re.IGNORECASE)
NEW_STYLE_PATTERN = re.compile(r"\b(\d{4}\.\d{4,5})(?:v\d+)?\b")

_VERSION_SUFFIX = re.compile(r"v\d+$", re.IGNORECASE)


def normalize_arxiv_id(value: str) -> str:
    """Strip whitespace, a trailing .pdf and the version suffix."""
    value = value.strip()
    if value.lower().endswith(".pdf"):
        value = value[:-4]
    return _VERSION_SUFFIX.sub("", value)


def extract_arxiv_id(text: Optional[str]) -> Optional[str]:
    """
    Find an arXiv identifier in free text.

    Explicit forms (``arXiv:`` prefix, arxiv.org URL, arXiv DOI) are tried
    before bare identifiers so that a URL's id wins over stray numbers.

    Returns:
        Version-less identifier, or None when nothing matches
    """
    if not text:
        return None

    for pattern in (ARXIV_PREFIX_PATTERN, ARXIV_URL_PATTERN, ARXIV_DOI_PATTERN):
        match = pattern.search(text)
        if match:
            return normalize_arxiv_id(match.group(1))

    # Old-style ids need an explicit arxiv mention to avoid matching paths.
    if "arxiv" in text.lower():
        match = OLD_STYLE_PATTERN.search(text)
        if match:
            return normalize_arxiv_id(match.group(1))

    match = NEW_STYLE_PATTERN.search(text)
    if match:
        return normalize_arxiv_id(match.group(1))
    return None


def parse_arxiv_target(target: str) -> str:
    """
    Resolve a user-supplied target to an arXiv id.

    Raises:
        ValueError: If the target is empty or holds no arXiv identifier
    """
    target = (target or "").strip()
    if not target:
        raise ValueError("arXiv target is required")

    if OLD_STYLE_PATTERN.fullmatch(target):
        return normalize_arxiv_id(target)

    arxiv_id = extract_arxiv_id(target)
    if not arxiv_id:
        raise ValueError(f"Could not find an arXiv identifier in {target!r}")
    return arxiv_id
