"""Tests for arXiv identifier parsing."""

import pytest

from ..src.arxiv_ids import extract_arxiv_id, normalize_arxiv_id, parse_arxiv_target


class TestParseArxivTarget:
    """Every pasted form resolves to the version-less id."""

    @pytest.mark.parametrize(
        "target",
        [
            "1706.03762",
            "1706.03762v5",
            "arXiv:1706.03762v5",
            "https://arxiv.org/abs/1706.03762",
            "https://arxiv.org/pdf/1706.03762v2.pdf",
            "https://arxiv.org/html/1706.03762v7",
            "10.48550/arXiv.1706.03762",
        ],
    )
    def test_new_style_forms(self, target):
        assert parse_arxiv_target(target) == "1706.03762"

    def test_old_style_id(self):
        assert parse_arxiv_target("hep-th/9901001") == "hep-th/9901001"
        assert parse_arxiv_target("https://arxiv.org/abs/hep-th/9901001v2") == "hep-th/9901001"

    def test_five_digit_id(self):
        assert parse_arxiv_target("arXiv:2401.12345") == "2401.12345"

    def test_no_identifier(self):
        with pytest.raises(ValueError):
            parse_arxiv_target("not a paper")

    def test_empty_target(self):
        with pytest.raises(ValueError):
            parse_arxiv_target("   ")


class TestExtractArxivId:
    def test_finds_id_in_citation_text(self):
        assert extract_arxiv_id("Vaswani et al. Attention is all you need. arXiv:1706.03762, 2017") == "1706.03762"

    def test_none_for_plain_text(self):
        assert extract_arxiv_id("Proceedings of NAACL, 2019") is None
        assert extract_arxiv_id(None) is None

    def test_old_style_needs_arxiv_mention(self):
        assert extract_arxiv_id("see cs/0112017 on arXiv") == "cs/0112017"
        assert extract_arxiv_id("path cs/0112017") is None

    def test_normalize(self):
        assert normalize_arxiv_id(" 1706.03762v3.pdf ") == "1706.03762"
