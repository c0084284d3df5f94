"""
Monitoring and logging module.
"""
from .logger import setup_logging, get_logger
from .metrics import OrchestratorMetrics

__all__ = [
    "setup_logging",
    "get_logger",
    "OrchestratorMetrics",
]
