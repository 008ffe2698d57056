"""Tests for paper_evidence."""
