"""Per-repository outcomes and the aggregated run report."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OutcomeStatus(str, Enum):
    """Terminal classification of one repository in a run."""

    SKIPPED = 'skipped'
    NO_OP = 'no_op'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class MigrationOutcome(BaseModel):
    """Result of processing a single repository."""

    repository: str = Field(..., description='organization/name')
    name: str = Field(..., description='Repository name')
    status: OutcomeStatus = Field(..., description='Terminal status')
    stage: Optional[str] = Field(
        default=None, description='Pipeline stage that decided the outcome'
    )
    reason: Optional[str] = Field(default=None, description='Why this outcome')

    branch: Optional[str] = Field(default=None, description='Change branch')
    branch_pushed: bool = Field(
        default=False, description='Branch reached the remote (left in place on later failure)'
    )
    pull_request_url: Optional[str] = Field(default=None, description='Opened pull request')
    warnings: List[str] = Field(default_factory=list, description='Non-fatal problems')
    dry_run: bool = Field(default=False, description='Produced by a dry run')

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    def describe(self) -> str:
        """One-line human summary used in logs and the final report."""
        text = f'{self.repository}: {self.status.value}'
        if self.stage:
            text += f' at {self.stage}'
        if self.reason:
            text += f' ({self.reason})'
        if self.branch_pushed and self.failed:
            text += f' [branch {self.branch} pushed]'
        return text


class RunReport(BaseModel):
    """All outcomes of one run, in processing order."""

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)
    dry_run: bool = Field(default=False)
    aborted: Optional[str] = Field(
        default=None, description='Discovery error that stopped the run early'
    )
    outcomes: List[MigrationOutcome] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    def add(self, outcome: MigrationOutcome) -> None:
        self.outcomes.append(outcome)

    def finish(self) -> None:
        self.completed_at = datetime.now()

    def by_status(self, status: OutcomeStatus) -> List[MigrationOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def counts(self) -> Dict[str, int]:
        """Number of outcomes per status, plus ``total``."""
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        counts['total'] = len(self.outcomes)
        return counts

    @property
    def failed(self) -> List[MigrationOutcome]:
        return self.by_status(OutcomeStatus.FAILED)

    @property
    def failed_repositories(self) -> List[str]:
        return [o.repository for o in self.failed]

    @property
    def succeeded(self) -> bool:
        """True when discovery completed and no repository failed."""
        return self.aborted is None and not self.failed
