"""
Export file generation.
"""

from .export_service import ExportFile, ExportFormat, ExportService

__all__ = [
    "ExportFile",
    "ExportFormat",
    "ExportService",
]
