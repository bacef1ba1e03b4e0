"""Batch MP3 Converter - Convert API service.

FastAPI boundary: access gate, upload validation, conversion, download.
"""

__all__: list[str] = []
