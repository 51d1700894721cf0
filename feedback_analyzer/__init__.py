"""Feedback Analyzer: multi-source feedback aggregation and analysis pipeline."""

__version__ = "0.1.0"
