"""
Paper Evidence source modules.

Pipeline:
    ingest.py           - Ingest orchestrators (inline preview, full write path)
    fetchers.py         - arXiv / ar5iv / GROBID HTTP clients
    arxiv_ids.py        - arXiv identifier parsing
    normalize_html.py   - ar5iv HTML → sections, figures, citations
    normalize_pages.py  - PDF/OCR page text → sections, figures
    normalize_tei.py    - GROBID TEI → sections, figures, citations
    extract_pdf.py      - pdfplumber page text extraction
    chunk_text.py       - Sections → bounded chunks
    ids.py              - Deterministic record identities
    tokenizers.py       - Scholarly tokenization for BM25
    index/              - Index schema and backends (Weaviate, local)
    index_manager.py    - Schema setup and upserts
    retrieval.py        - Hybrid search with page-window expansion
    evidence.py         - Evidence context assembly
    generation.py       - Generation payload validation
"""
