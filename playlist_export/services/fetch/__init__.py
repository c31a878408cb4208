"""
The callback fetch pipeline.
"""

from .orchestrator import FetchOrchestrator, FetchResult, FetchState

__all__ = [
    "FetchOrchestrator",
    "FetchResult",
    "FetchState",
]
