"""Migration engine, orchestrator and handler interface."""

from .exceptions import (
    FleetMigrateError,
    DiscoveryError,
    SkipRegistryError,
    SyncError,
    HandlerError,
    WorkflowError,
)
from .handler import ChangeSet, MutationHandler, load_handler
from .skip import SkipRegistry
from .orchestrator import Orchestrator
from .engine import MigrationEngine

__all__ = [
    'FleetMigrateError',
    'DiscoveryError',
    'SkipRegistryError',
    'SyncError',
    'HandlerError',
    'WorkflowError',
    'ChangeSet',
    'MutationHandler',
    'load_handler',
    'SkipRegistry',
    'Orchestrator',
    'MigrationEngine',
]
