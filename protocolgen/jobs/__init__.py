"""
Background protocol jobs.
"""

from .orchestrator import (
    GenerationParams,
    JobView,
    ProtocolJobOrchestrator,
    build_params,
)
from .worker_pool import Reservation, WorkerPool

__all__ = [
    "GenerationParams",
    "JobView",
    "ProtocolJobOrchestrator",
    "build_params",
    "Reservation",
    "WorkerPool",
]
