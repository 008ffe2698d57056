"""Command-line interface for paper-evidence."""
