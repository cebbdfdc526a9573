"""Command implementations exposed by the Handoff CLI."""

from .clean import start_cloud_clean
from .config import show_config
from .run import start_cloud_run
from .status import show_status

__all__ = [
    "show_config",
    "show_status",
    "start_cloud_clean",
    "start_cloud_run",
]
