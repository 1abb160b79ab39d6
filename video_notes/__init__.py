"""YouTube video → summary, study notes and transcript via Gemini."""

__version__ = "1.0.0"
