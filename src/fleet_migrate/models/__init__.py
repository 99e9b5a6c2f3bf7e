"""Data models for repositories and run outcomes."""

from .repository import RepositoryDescriptor, WorkingCopy
from .outcome import MigrationOutcome, OutcomeStatus, RunReport

__all__ = [
    'RepositoryDescriptor',
    'WorkingCopy',
    'MigrationOutcome',
    'OutcomeStatus',
    'RunReport',
]
