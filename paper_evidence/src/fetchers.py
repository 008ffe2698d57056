"""
Source fetchers: arXiv metadata, ar5iv / arXiv HTML, PDFs and GROBID.

All requests go through one lazily created httpx.AsyncClient with explicit
per-request timeouts. Failures surface as FetchFailedError (with the status
code when there is one) and timeouts as FetchTimeoutError. Nothing is
retried here; retry is the caller's decision.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from ..config.settings import Settings
from .errors import FetchError, FetchFailedError, FetchTimeoutError
from .schemas.paper import Paper, normalize_whitespace

logger = logging.getLogger(__name__)

ATOM_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
}

ARXIV_HTML_BASE_URL = "https://arxiv.org/html"
ARXIV_ABS_BASE_URL = "https://arxiv.org/abs"
ARXIV_PDF_BASE_URL = "https://arxiv.org/pdf"

GROBID_COORDINATES = ["p", "s", "figure", "biblStruct", "head"]


def parse_arxiv_atom(xml_text: str, arxiv_id: str) -> Paper:
    """
    Parse an arXiv API Atom response for a single id.

    Raises:
        FetchFailedError: If the feed has no entry for the id (status 404)
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise FetchFailedError(f"Invalid arXiv API response for {arxiv_id}: {exc}") from exc

    entry = root.find("atom:entry", ATOM_NS)
    entry_id = entry.findtext("atom:id", default="", namespaces=ATOM_NS) if entry is not None else ""
    if entry is None or "api/errors" in entry_id:
        raise FetchFailedError(f"arXiv paper {arxiv_id} not found", status_code=404)

    title = normalize_whitespace(entry.findtext("atom:title", default="", namespaces=ATOM_NS))
    if not title:
        raise FetchFailedError(f"arXiv paper {arxiv_id} not found", status_code=404)

    authors = [
        normalize_whitespace(a.findtext("atom:name", default="", namespaces=ATOM_NS))
        for a in entry.findall("atom:author", ATOM_NS)
    ]

    categories: list[str] = []
    primary = entry.find("arxiv:primary_category", ATOM_NS)
    if primary is not None and primary.get("term"):
        categories.append(primary.get("term"))
    for category in entry.findall("atom:category", ATOM_NS):
        term = category.get("term")
        if term and term not in categories:
            categories.append(term)

    pdf_url = None
    for link in entry.findall("atom:link", ATOM_NS):
        if link.get("title") == "pdf" or link.get("type") == "application/pdf":
            pdf_url = link.get("href")
            break

    return Paper(
        paper_id=arxiv_id,
        arxiv_id=arxiv_id,
        title=title,
        authors=[a for a in authors if a],
        abstract=normalize_whitespace(entry.findtext("atom:summary", default="", namespaces=ATOM_NS)) or None,
        published_at=entry.findtext("atom:published", default=None, namespaces=ATOM_NS),
        updated_at=entry.findtext("atom:updated", default=None, namespaces=ATOM_NS),
        categories=categories,
        pdf_url=pdf_url,
        source_url=f"{ARXIV_ABS_BASE_URL}/{arxiv_id}",
    )


class ArxivClient:
    """
    Client for arXiv, ar5iv and (optionally) GROBID.

    Args:
        api_base_url: arXiv query API endpoint
        ar5iv_base_url: ar5iv HTML base, e.g. https://ar5iv.org/html
        contact_email: Sent in the User-Agent and as ``mailto``
        timeout: Default request timeout in seconds
        pdf_timeout: Timeout for PDF downloads in seconds
        grobid_url: GROBID service base URL
        grobid_timeout: Timeout for GROBID processing in seconds
        transport: Optional httpx transport (tests use MockTransport)
    """

    def __init__(
        self,
        api_base_url: str = "https://export.arxiv.org/api/query",
        ar5iv_base_url: str = "https://ar5iv.org/html",
        contact_email: Optional[str] = None,
        timeout: float = 20.0,
        pdf_timeout: float = 20.0,
        grobid_url: Optional[str] = None,
        grobid_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base_url = api_base_url
        self.ar5iv_base_url = ar5iv_base_url.rstrip("/")
        self.contact_email = contact_email
        self.timeout = timeout
        self.pdf_timeout = pdf_timeout
        self.grobid_url = grobid_url.rstrip("/") if grobid_url else None
        self.grobid_timeout = grobid_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ArxivClient":
        return cls(
            api_base_url=settings.arxiv_api_base_url,
            ar5iv_base_url=settings.ar5iv_base_url,
            contact_email=settings.arxiv_contact_email,
            timeout=settings.timeout_seconds(settings.fetch_timeout_ms),
            pdf_timeout=settings.timeout_seconds(settings.pdf_fetch_timeout_ms),
            grobid_url=settings.grobid_url,
            grobid_timeout=settings.timeout_seconds(settings.grobid_timeout_ms),
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._get_headers(),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> dict[str, str]:
        contact = f" (+mailto:{self.contact_email})" if self.contact_email else ""
        return {"User-Agent": f"ReadableIngest/1.0{contact}"}

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ArxivClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _send(
        self,
        method: str,
        url: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> httpx.Response:
        timeout = timeout or self.timeout
        try:
            response = await self.client.request(method, url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"{method} {url} timed out after {timeout}s", url=url) from exc
        except httpx.TransportError as exc:
            raise FetchFailedError(f"{method} {url} failed: {exc}", url=url) from exc

        if not response.is_success:
            raise FetchFailedError(
                f"{method} {url} returned {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response

    async def fetch_metadata(self, arxiv_id: str) -> Paper:
        """Fetch title, authors, abstract, dates and categories for an arXiv id."""
        params = {"id_list": arxiv_id}
        if self.contact_email:
            params["mailto"] = self.contact_email
        response = await self._send("GET", self.api_base_url, params=params)
        return parse_arxiv_atom(response.text, arxiv_id)

    def html_candidates(self, arxiv_id: str) -> list[str]:
        return [
            f"{self.ar5iv_base_url}/{arxiv_id}",
            f"{ARXIV_HTML_BASE_URL}/{arxiv_id}",
            f"{ARXIV_ABS_BASE_URL}/{arxiv_id}",
        ]

    async def fetch_html(self, arxiv_id: str) -> tuple[str, str]:
        """
        Fetch rendered HTML, trying ar5iv, then arxiv.org/html, then the abstract page.

        Returns:
            (html, final_url); final_url is the base for relative image links

        Raises:
            FetchError: The last failure when every source fails
        """
        last_error: Optional[FetchError] = None
        for url in self.html_candidates(arxiv_id):
            try:
                response = await self._send("GET", url)
            except FetchError as exc:
                logger.warning(f"HTML fetch failed for {arxiv_id} from {url}: {exc}")
                last_error = exc
                continue
            return response.text, str(response.url)
        raise last_error

    async def fetch_pdf(self, arxiv_id: str, pdf_url: Optional[str] = None) -> bytes:
        url = pdf_url or f"{ARXIV_PDF_BASE_URL}/{arxiv_id}"
        response = await self._send("GET", url, timeout=self.pdf_timeout)
        return response.content

    async def fetch_grobid_tei(self, pdf_bytes: bytes) -> str:
        """
        Run GROBID full-text extraction on a PDF.

        Raises:
            ValueError: If no GROBID URL is configured
        """
        if not self.grobid_url:
            raise ValueError("GROBID_URL is not configured")
        response = await self._send(
            "POST",
            f"{self.grobid_url}/api/processFulltextDocument",
            timeout=self.grobid_timeout,
            files={"input": ("paper.pdf", pdf_bytes, "application/pdf")},
            data={"teiCoordinates": GROBID_COORDINATES, "consolidateCitations": "0"},
        )
        return response.text
