"""
Error taxonomy for ingest, indexing and retrieval.

Fetch and index failures carry enough context (URL, status code, class
name) to be reported upstream. Timeouts additionally subclass the builtin
``TimeoutError`` so callers can tell them apart from other failures.
``DegradedRetrievalError`` is never raised by the retriever: it is attached
to results as a signal that one search leg was unavailable.
"""

from typing import Optional


class PaperEvidenceError(Exception):
    """Base exception for the package."""


class EmptyDocumentError(PaperEvidenceError, ValueError):
    """Normalization produced zero sections."""


class FetchError(PaperEvidenceError):
    """A source fetch (metadata, HTML, PDF, GROBID) failed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FetchFailedError(FetchError):
    """Upstream returned an error status or the transport failed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, url=url)
        self.status_code = status_code


class FetchTimeoutError(FetchError, TimeoutError):
    """A fetch or extraction exceeded its timeout."""


class IndexBackendError(PaperEvidenceError):
    """Base class for index backend failures."""


class IndexUnavailableError(IndexBackendError):
    """Backend is unreachable or reports not ready."""


class IndexTimeoutError(IndexBackendError, TimeoutError):
    """Backend call exceeded its timeout."""


class IndexSchemaError(IndexBackendError):
    """An existing class has an incompatible shape."""


class IndexWriteError(IndexBackendError):
    """One or more records in a batch failed to write."""

    def __init__(self, message: str, failures: Optional[list[str]] = None):
        super().__init__(message)
        self.failures = failures or []


class IndexQueryError(IndexBackendError):
    """A query against the backend failed."""


class VectorSearchError(IndexQueryError):
    """The vector leg of a search failed (e.g. vectorizer unavailable)."""


class KeywordSearchError(IndexQueryError):
    """The keyword (BM25) leg of a search failed."""


class DegradedRetrievalError(PaperEvidenceError):
    """Signal that retrieval ran on a single leg."""

    def __init__(self, failed_leg: str, reason: str):
        super().__init__(f"{failed_leg} search unavailable: {reason}")
        self.failed_leg = failed_leg
        self.reason = reason


class MalformedGenerationPayloadError(PaperEvidenceError, ValueError):
    """A generation payload could not be parsed or validated."""
