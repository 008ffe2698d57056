"""
Scholarly tokenization for BM25 search.

Plain word tokenization breaks the terms readers search papers for. This
tokenizer:
- Keeps hyphenated compounds and their parts: self-attention →
  ["self-attention", "self", "attention"]
- Keeps model and version names: GPT-4, BERT-base, ResNet-50
- Keeps decimals and arXiv ids: 0.65, 1706.03762
- Normalizes figure/table/equation references: "Fig. 3" → "figure3"

Examples:
    "self-attention layers" → ["self-attention", "self", "attention", "layers"]
    "see Fig. 2b"           → ["figure2b", "see", "fig"]
    "BLEU of 28.4"          → ["28.4", "bleu", "of"]
"""

import re
from typing import Callable

# Hyphenated compounds: self-attention, GPT-4, state-of-the-art, ResNet-50
COMPOUND_PATTERN = re.compile(r"\b[A-Za-z][A-Za-z0-9]*(?:-[A-Za-z0-9]+)+\b")

# Decimals and arXiv-style ids: 0.65, 28.4, 1706.03762
DECIMAL_PATTERN = re.compile(r"\b\d+\.\d+\b")

# Figure / table / equation / section references
REFERENCE_PATTERN = re.compile(
    r"""
    \b(Figure|Fig\.?|Table|Tab\.?|Equation|Eq\.?|Section|Sec\.?)   # Kind
    \s*                                                            # Optional space
    \(?(\d+[a-z]?)\)?                                              # Number, maybe (3)
    """,
    re.VERBOSE | re.IGNORECASE,
)

_REFERENCE_KINDS = {
    "figure": "figure", "fig": "figure",
    "table": "table", "tab": "table",
    "equation": "equation", "eq": "equation",
    "section": "section", "sec": "section",
}


def scholarly_tokenize(text: str) -> list[str]:
    """
    Tokenize text while preserving scholarly terms.

    Returns the preserved terms AND their parts so that a query for
    "attention" still matches "self-attention".

    Examples:
        >>> scholarly_tokenize("multi-head attention")
        ['multi-head', 'multi', 'head', 'attention']

        >>> scholarly_tokenize("Table 2 reports 28.4 BLEU")
        ['table2', '28.4', 'table', 'reports', 'bleu']
    """
    tokens: list[str] = []
    spans: list[tuple[int, int]] = []

    for match in REFERENCE_PATTERN.finditer(text):
        kind = _REFERENCE_KINDS[match.group(1).lower().rstrip(".")]
        tokens.append(f"{kind}{match.group(2).lower()}")

    for match in COMPOUND_PATTERN.finditer(text):
        compound = match.group().lower()
        tokens.append(compound)
        tokens.extend(part for part in compound.split("-") if len(part) >= 2 or part.isdigit())
        spans.append(match.span())

    for match in DECIMAL_PATTERN.finditer(text):
        tokens.append(match.group())
        spans.append(match.span())

    # Remove extracted terms from text for standard tokenization
    remaining = text
    for start, end in sorted(spans, reverse=True):
        remaining = remaining[:start] + " " + remaining[end:]

    words = re.findall(r"\b[a-zA-Z][a-zA-Z0-9]*\b", remaining)
    tokens.extend(word.lower() for word in words if len(word) >= 2)

    return tokens


def simple_tokenize(text: str) -> list[str]:
    """
    Simple tokenization.

    Basic word tokenization with lowercasing.
    """
    words = re.findall(r"\b[a-zA-Z0-9]+\b", text)
    return [word.lower() for word in words if len(word) >= 2]


def get_tokenizer(name: str = "scholarly") -> Callable[[str], list[str]]:
    """
    Get tokenizer by name.

    Args:
        name: "scholarly" or "simple"

    Returns:
        Tokenizer function
    """
    if name == "scholarly":
        return scholarly_tokenize
    return simple_tokenize
