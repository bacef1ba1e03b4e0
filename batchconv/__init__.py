"""Batch MP3 Converter - Core application modules.

Provides:
- Session-scoped storage for uploads and converted output
- Concurrent batch transcoding with per-file outcomes
- ZIP packaging of converted files
- Time-based retention sweeps and deferred cleanup
"""

__version__ = "0.1.0"
