"""Tests for GROBID TEI normalization."""

import pytest

from ..src.errors import EmptyDocumentError
from ..src.normalize_tei import parse_grobid_tei

TEI_XML = """<?xml version="1.0" encoding="UTF-8"?>
<TEI xmlns="http://www.tei-c.org/ns/1.0">
  <teiHeader>
    <profileDesc>
      <abstract><div><p>We propose the Transformer.</p></div></abstract>
    </profileDesc>
  </teiHeader>
  <text>
    <body>
      <div>
        <head n="1">Introduction</head>
        <p><s coords="1,72.0,300.1,451.2,9.0">Recurrent networks dominate
          <ref type="bibr" target="#b0">[1]</ref>.</s></p>
      </div>
      <div>
        <p><s coords="2,72.0,100.0,451.2,9.0">This continues the introduction.</s></p>
      </div>
      <div>
        <head n="3.1">Scaled Dot-Product Attention</head>
        <p><s coords="4,72.0,90.0,451.2,9.0">See <ref type="figure" target="#fig_0">Figure 1</ref>
          and <ref type="table" target="#tab_0">Table 1</ref>
          <ref type="bibr" target="#b0">[1]</ref><ref type="bibr" target="#b1">[2]</ref>.</s></p>
      </div>
      <figure xml:id="fig_0" coords="3,100,100,200,200">
        <head>Figure 1:</head>
        <label>1</label>
        <figDesc>The Transformer architecture.</figDesc>
      </figure>
      <figure xml:id="tab_0" type="table">
        <label>1</label>
        <figDesc>BLEU scores.</figDesc>
      </figure>
    </body>
    <back>
      <div type="references">
        <listBibl>
          <biblStruct xml:id="b0">
            <analytic>
              <title level="a">Neural machine translation by jointly learning to align and translate</title>
              <author><persName><forename>Dzmitry</forename><surname>Bahdanau</surname></persName></author>
              <author><persName><forename>Yoshua</forename><surname>Bengio</surname></persName></author>
            </analytic>
            <monogr>
              <title level="m">ICLR</title>
              <imprint><date type="published" when="2015" /></imprint>
            </monogr>
            <idno type="arXiv">arXiv:1409.0473</idno>
          </biblStruct>
          <biblStruct xml:id="b1">
            <monogr>
              <title level="m">Deep Learning</title>
              <imprint><date>2016</date></imprint>
            </monogr>
            <idno type="DOI">10.5555/3086952</idno>
          </biblStruct>
        </listBibl>
      </div>
    </back>
  </text>
</TEI>
"""


class TestParseGrobidTei:
    """Tests for TEI sections, figures and bibliography."""

    def test_sections(self):
        doc = parse_grobid_tei(TEI_XML)
        assert [s.section_id for s in doc.sections] == ["abstract", "tei-s1", "tei-s3"]
        assert [s.title for s in doc.sections] == [
            "Abstract", "Introduction", "Scaled Dot-Product Attention"
        ]
        assert [s.level for s in doc.sections] == [1, 1, 2]

    def test_headless_div_continues_previous_section(self):
        doc = parse_grobid_tei(TEI_XML)
        intro = doc.sections[1]
        assert [p.paragraph_id for p in intro.paragraphs] == ["tei-s1-p1", "tei-s1-p2"]
        assert [p.page_number for p in intro.paragraphs] == [1, 2]

    def test_paragraph_references(self):
        doc = parse_grobid_tei(TEI_XML)
        paragraph = doc.sections[2].paragraphs[0]
        assert paragraph.citation_ids == ["b0", "b1"]
        assert paragraph.figure_ids == ["fig_0", "tab_0"]
        assert paragraph.page_number == 4

    def test_figures(self):
        doc = parse_grobid_tei(TEI_XML)
        assert [(f.figure_id, f.label, f.page_number) for f in doc.figures] == [
            ("fig_0", "Figure 1", 3),
            ("tab_0", "Table 1", None),
        ]
        assert doc.figures[0].caption == "The Transformer architecture."

    def test_bibliography(self):
        doc = parse_grobid_tei(TEI_XML)
        first, second = doc.citations
        assert first.citation_id == "b0"
        assert first.authors == ["Dzmitry Bahdanau", "Yoshua Bengio"]
        assert first.year == 2015
        assert first.source == "ICLR"
        assert first.arxiv_id == "1409.0473"
        assert second.title == "Deep Learning"
        assert second.source is None
        assert second.year == 2016
        assert second.doi == "10.5555/3086952"

    def test_invalid_xml(self):
        with pytest.raises(EmptyDocumentError):
            parse_grobid_tei("<TEI><unclosed>")

    def test_empty_body(self):
        xml = '<TEI xmlns="http://www.tei-c.org/ns/1.0"><text><body/></text></TEI>'
        with pytest.raises(EmptyDocumentError):
            parse_grobid_tei(xml)
