"""Application services."""

from .configuration import ConfigApplier
from .database import DatabaseInitializer
from .initialization import (
    InitializationService,
    configure_initialization_service,
    get_initialization_service,
    reset_initialization_state,
)
from .seeding import WorkspaceSeeder
from .status import StatusAggregator, overall_status

__all__ = [
    "ConfigApplier",
    "DatabaseInitializer",
    "InitializationService",
    "StatusAggregator",
    "WorkspaceSeeder",
    "configure_initialization_service",
    "get_initialization_service",
    "overall_status",
    "reset_initialization_state",
]
