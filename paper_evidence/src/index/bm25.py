"""
BM25 index construction.

Uses scholarly tokenization so hyphenated terms, model names and figure
references survive into the keyword index.

Scoring uses BM25+, whose IDF stays positive on tiny corpora (a paper with one
or two chunks would otherwise score every match at or below zero). Because
BM25+ also gives non-matching records a small positive score, membership is
decided by token overlap with the query, not by score.
"""

from rank_bm25 import BM25Plus

from ..tokenizers import get_tokenizer


class BM25Index:
    """
    BM25 index over one paper's records.

    Wraps rank_bm25 with custom tokenization and the record ids needed to
    map scores back to records.
    """

    def __init__(
        self,
        bm25: BM25Plus,
        record_ids: list[str],
        record_tokens: list[set[str]],
        tokenizer_name: str = "scholarly",
    ):
        self.bm25 = bm25
        self.record_ids = record_ids
        self.record_tokens = record_tokens
        self.tokenizer_name = tokenizer_name
        self._tokenizer = get_tokenizer(tokenizer_name)

    def search(
        self,
        query: str,
        top_k: int = 10,
    ) -> list[tuple[str, float]]:
        """
        Search the index.

        Args:
            query: Search query
            top_k: Number of results

        Returns:
            List of (record_id, score) tuples for records sharing at least
            one token with the query, best first
        """
        query_tokens = self._tokenizer(query)

        if not query_tokens:
            return []

        scores = self.bm25.get_scores(query_tokens)
        wanted = set(query_tokens)

        # Ties broken by record id so results are stable across rebuilds
        ranked = sorted(
            (
                (record_id, float(score))
                for record_id, score, tokens in zip(self.record_ids, scores, self.record_tokens)
                if tokens & wanted
            ),
            key=lambda pair: (-pair[1], pair[0]),
        )
        return ranked[:top_k]


def build_bm25_index(
    texts: list[str],
    record_ids: list[str],
    tokenizer_name: str = "scholarly",
) -> BM25Index:
    """
    Build a BM25 index from record texts.

    Args:
        texts: Searchable text per record
        record_ids: Record id per text
        tokenizer_name: Tokenizer to use

    Returns:
        BM25Index ready for search
    """
    if len(texts) != len(record_ids):
        raise ValueError("texts and record_ids must have the same length")
    if not texts:
        raise ValueError("Cannot build a BM25 index over zero records")

    tokenizer = get_tokenizer(tokenizer_name)
    tokenized = [tokenizer(text) or ["_"] for text in texts]

    bm25 = BM25Plus(tokenized)
    return BM25Index(
        bm25=bm25,
        record_ids=record_ids,
        record_tokens=[set(tokens) for tokens in tokenized],
        tokenizer_name=tokenizer_name,
    )
