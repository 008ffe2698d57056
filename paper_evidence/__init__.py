"""
Paper Evidence

Scholarly-paper ingest and evidence retrieval for grounded reading
assistants. Papers (arXiv identifiers or uploaded PDFs) are normalized into
sections, paragraphs, figures and citations, chunked, and indexed in a
hybrid vector + keyword index. At question time the retriever assembles an
evidence context: top hits, neighbouring pages, linked figures and citations.
"""

__version__ = "0.1.0"
