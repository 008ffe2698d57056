"""
Tests for scholarly tokenization.

These tests ensure the tokenizer correctly preserves:
- Hyphenated compounds and their parts: self-attention
- Decimals and arXiv ids: 28.4, 1706.03762
- Figure/table references: Fig. 3 → figure3
"""

from ..src.tokenizers import get_tokenizer, scholarly_tokenize, simple_tokenize


class TestScholarlyTokenizer:
    """Tests for scholarly tokenization."""

    def test_compound_and_parts(self):
        """self-attention should produce the compound and both parts."""
        tokens = scholarly_tokenize("self-attention layers")
        assert "self-attention" in tokens
        assert "self" in tokens
        assert "attention" in tokens
        assert "layers" in tokens

    def test_docstring_examples(self):
        assert scholarly_tokenize("multi-head attention") == ["multi-head", "multi", "head", "attention"]
        assert scholarly_tokenize("Table 2 reports 28.4 BLEU") == ["table2", "28.4", "table", "reports", "bleu"]

    def test_model_names_preserved(self):
        tokens = scholarly_tokenize("GPT-4 and ResNet-50 baselines")
        assert "gpt-4" in tokens
        assert "resnet-50" in tokens
        assert "50" in tokens
        assert "baselines" in tokens

    def test_decimal_preserved(self):
        tokens = scholarly_tokenize("alpha of 0.65 on 1706.03762")
        assert "0.65" in tokens
        assert "1706.03762" in tokens

    def test_figure_references_normalized(self):
        assert "figure3" in scholarly_tokenize("as shown in Fig. 3")
        assert "figure2b" in scholarly_tokenize("see Figure 2b")
        assert "table1" in scholarly_tokenize("Tab. 1 lists")
        assert "equation4" in scholarly_tokenize("from Eq. (4)")

    def test_lowercase_and_short_words_dropped(self):
        tokens = scholarly_tokenize("A TRANSFORMER model")
        assert "transformer" in tokens
        assert "model" in tokens
        assert "a" not in tokens

    def test_empty_text(self):
        assert scholarly_tokenize("") == []


class TestSimpleTokenizer:
    """Tests for simple tokenization."""

    def test_basic_tokenization(self):
        assert simple_tokenize("Hello World") == ["hello", "world"]

    def test_splits_compounds(self):
        assert simple_tokenize("self-attention") == ["self", "attention"]

    def test_get_tokenizer(self):
        assert get_tokenizer("scholarly") is scholarly_tokenize
        assert get_tokenizer("simple") is simple_tokenize
        assert get_tokenizer() is scholarly_tokenize
