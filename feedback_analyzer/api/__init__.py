"""Feedback Analyzer HTTP API."""
