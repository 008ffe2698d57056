"""Tests for the arXiv / ar5iv / GROBID client."""

import asyncio

import httpx
import pytest

from ..src.errors import FetchFailedError, FetchTimeoutError
from ..src.fetchers import ArxivClient, parse_arxiv_atom

ATOM_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <updated>2023-08-02T00:41:18Z</updated>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <summary>  The dominant sequence transduction models are based on complex
      recurrent or convolutional neural networks.  </summary>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
    <link href="http://arxiv.org/abs/1706.03762v7" rel="alternate" type="text/html"/>
    <link title="pdf" href="http://arxiv.org/pdf/1706.03762v7" rel="related" type="application/pdf"/>
    <arxiv:primary_category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.LG" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
</feed>
"""

EMPTY_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"><title>ArXiv Query</title></feed>
"""


def _client(handler, **kwargs) -> ArxivClient:
    return ArxivClient(transport=httpx.MockTransport(handler), **kwargs)


class TestParseArxivAtom:
    def test_metadata(self):
        paper = parse_arxiv_atom(ATOM_FEED, "1706.03762")
        assert paper.paper_id == "1706.03762"
        assert paper.title == "Attention Is All You Need"
        assert paper.authors == ["Ashish Vaswani", "Noam Shazeer"]
        assert paper.abstract.startswith("The dominant sequence transduction models")
        assert paper.published_at == "2017-06-12T17:57:34Z"
        assert paper.categories == ["cs.CL", "cs.LG"]
        assert paper.pdf_url == "http://arxiv.org/pdf/1706.03762v7"
        assert paper.source_url == "https://arxiv.org/abs/1706.03762"

    def test_missing_entry_is_not_found(self):
        with pytest.raises(FetchFailedError) as excinfo:
            parse_arxiv_atom(EMPTY_FEED, "0000.00000")
        assert excinfo.value.status_code == 404


class TestArxivClient:
    """Tests for ArxivClient against a mocked transport."""

    def test_fetch_metadata_params_and_user_agent(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=ATOM_FEED)

        async def run():
            async with _client(handler, contact_email="team@example.org") as client:
                return await client.fetch_metadata("1706.03762")

        paper = asyncio.run(run())
        assert paper.title == "Attention Is All You Need"
        assert seen[0].url.params["id_list"] == "1706.03762"
        assert seen[0].url.params["mailto"] == "team@example.org"
        assert "team@example.org" in seen[0].headers["User-Agent"]

    def test_html_falls_back_to_arxiv_html(self):
        def handler(request):
            if request.url.host == "ar5iv.org":
                return httpx.Response(404)
            return httpx.Response(200, text="<html>paper</html>")

        html, url = asyncio.run(_client(handler).fetch_html("1706.03762"))
        assert html == "<html>paper</html>"
        assert url == "https://arxiv.org/html/1706.03762"

    def test_html_all_sources_fail(self):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(FetchFailedError) as excinfo:
            asyncio.run(_client(handler).fetch_html("1706.03762"))
        assert excinfo.value.status_code == 503
        assert excinfo.value.url == "https://arxiv.org/abs/1706.03762"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(FetchTimeoutError):
            asyncio.run(_client(handler).fetch_metadata("1706.03762"))

    def test_fetch_pdf_default_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"%PDF-1.5")

        assert asyncio.run(_client(handler).fetch_pdf("1706.03762")) == b"%PDF-1.5"
        assert seen == ["https://arxiv.org/pdf/1706.03762"]

    def test_grobid(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="<TEI/>")

        client = _client(handler, grobid_url="http://grobid:8070/")
        assert asyncio.run(client.fetch_grobid_tei(b"%PDF")) == "<TEI/>"
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "http://grobid:8070/api/processFulltextDocument"

    def test_grobid_not_configured(self):
        with pytest.raises(ValueError):
            asyncio.run(_client(lambda r: httpx.Response(200)).fetch_grobid_tei(b"%PDF"))
