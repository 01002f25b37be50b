"""
docquarry - Multi-format document text extraction engine.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config, ExtractionConfig
from .extractor import ExtractionError, ExtractionResult, ExtractionRouter, ExtractionStatus

__all__ = [
    "__version__",
    "Config",
    "ExtractionConfig",
    "ExtractionError",
    "ExtractionResult",
    "ExtractionRouter",
    "ExtractionStatus",
]
