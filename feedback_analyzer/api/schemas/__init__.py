"""Request/response schemas for the Feedback Analyzer API."""
