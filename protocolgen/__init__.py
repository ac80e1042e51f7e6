"""
Construction Protocol Generator
Builds PDF protocols of project tasks, photos and annotated blueprints.
"""

__version__ = "0.1.0"

from .config import ProtocolConfig, load_config
from .jobs import ProtocolJobOrchestrator
from .models import JobStatus, ReportData, TaskFilters
from .report import generate_protocol_pdf

__all__ = [
    "ProtocolConfig",
    "load_config",
    "ProtocolJobOrchestrator",
    "JobStatus",
    "ReportData",
    "TaskFilters",
    "generate_protocol_pdf",
]
