"""Error taxonomy of the orchestration engine."""

from typing import Optional


class FleetMigrateError(Exception):
    """Base exception for orchestration failures."""

    pass


class DiscoveryError(FleetMigrateError):
    """Listing fetch or parse failure; fatal to the run.

    ``report`` holds the outcomes produced before discovery broke off.
    """

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report


class SkipRegistryError(FleetMigrateError):
    """The persisted skip store could not be read or written."""

    pass


class SyncError(FleetMigrateError):
    """Clone, pull or reset failed, or the prerequisite file check failed."""

    def __init__(self, message: str, stage: str = 'sync'):
        super().__init__(message)
        self.stage = stage


class HandlerError(FleetMigrateError):
    """A mutation handler raised during its applicability check or apply."""

    def __init__(self, message: str, stage: str = 'apply'):
        super().__init__(message)
        self.stage = stage


class WorkflowError(FleetMigrateError):
    """Branch, stage, commit, push or pull request step failed."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
