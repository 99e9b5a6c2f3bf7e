"""Control loop applying one handler across every repository of an organization."""

from datetime import datetime
from typing import Iterable, Optional, Set

from loguru import logger

from ..git.sync import LocalSync
from ..git.workflow import GitWorkflow
from ..models.outcome import MigrationOutcome, OutcomeStatus, RunReport
from ..models.repository import RepositoryDescriptor
from .exceptions import DiscoveryError, HandlerError, SyncError
from .handler import ChangeSet, MutationHandler
from .skip import SkipRegistry


class Orchestrator:
    """Processes repositories one at a time, isolating every failure.

    Each repository goes through skip filter, marker pre-check, sync,
    applicability, apply and the git workflow. Whatever happens, it ends
    with exactly one :class:`MigrationOutcome` and the loop moves on.
    """

    def __init__(
        self,
        handler: MutationHandler,
        skip_registry: SkipRegistry,
        local_sync: LocalSync,
        workflow: GitWorkflow,
        dry_run: bool = False,
        only: Optional[Iterable[str]] = None,
    ):
        """Initialize orchestrator.

        Args:
            handler: Migration to apply
            skip_registry: Exclusions consulted before any work
            local_sync: Working copy manager
            workflow: Branch/commit/push/pull request workflow
            dry_run: Stop after the applicability check
            only: Restrict the run to these repository names
        """
        self.handler = handler
        self.skip_registry = skip_registry
        self.local_sync = local_sync
        self.workflow = workflow
        self.dry_run = dry_run
        self.only: Set[str] = set(only or [])
        self.logger = logger.bind(component='Orchestrator')

    async def run(self, repositories: Iterable[RepositoryDescriptor]) -> RunReport:
        """Process every repository the iterable yields.

        Raises:
            DiscoveryError: If the listing fails; ``error.report`` holds the
                outcomes gathered so far
        """
        report = RunReport(dry_run=self.dry_run)
        self.logger.info(
            f'Starting {"dry run" if self.dry_run else "run"} of {self.handler!r}'
        )

        try:
            for repository in repositories:
                outcome = await self.process_repository(repository)
                report.add(outcome)
        except DiscoveryError as e:
            report.aborted = str(e)
            report.finish()
            self.logger.error(f'Repository discovery failed, stopping run: {e}')
            e.report = report
            raise

        report.finish()
        counts = report.counts()
        self.logger.info(
            f'Run finished: {counts["succeeded"]} succeeded, {counts["no_op"]} no-op, '
            f'{counts["skipped"]} skipped, {counts["failed"]} failed'
        )
        if report.failed:
            self.logger.warning(
                'Failed repositories: ' + ', '.join(report.failed_repositories)
            )
        return report

    async def process_repository(self, repository: RepositoryDescriptor) -> MigrationOutcome:
        """Take one repository to a terminal outcome. Never raises."""
        started_at = datetime.now()
        try:
            outcome = await self._process(repository)
        except Exception as e:
            self.logger.exception(f'{repository.full_name}: unexpected error')
            outcome = self._outcome(
                repository, OutcomeStatus.FAILED, stage='internal', reason=str(e)
            )

        outcome.started_at = started_at
        outcome.completed_at = datetime.now()
        self._log(outcome)
        return outcome

    async def _process(self, repository: RepositoryDescriptor) -> MigrationOutcome:
        name = repository.name

        if self.only and name not in self.only:
            return self._outcome(
                repository, OutcomeStatus.SKIPPED, stage='selection', reason='not selected'
            )

        reason = self.skip_registry.skip_reason(name)
        if reason:
            return self._outcome(repository, OutcomeStatus.SKIPPED, stage='skip', reason=reason)

        try:
            if not await self.local_sync.has_marker_file(repository):
                return self._outcome(
                    repository,
                    OutcomeStatus.SKIPPED,
                    stage='precheck',
                    reason=f'no {self.local_sync.marker_file}',
                )
            working_copy = await self.local_sync.sync(repository)
        except SyncError as e:
            return self._outcome(
                repository, OutcomeStatus.FAILED, stage=e.stage, reason=str(e)
            )

        try:
            if not self._call_handler('applicability', self.handler.is_applicable, working_copy):
                return self._outcome(
                    repository, OutcomeStatus.NO_OP, stage='applicability', reason='not applicable'
                )

            if self.dry_run:
                return self._outcome(
                    repository, OutcomeStatus.NO_OP, stage='applicability', reason='would apply'
                )

            change_set = self._call_handler('apply', self.handler.apply, working_copy)
        except HandlerError as e:
            return self._outcome(repository, OutcomeStatus.FAILED, stage=e.stage, reason=str(e))

        if not change_set:
            return self._outcome(
                repository, OutcomeStatus.NO_OP, stage='apply', reason='no files changed'
            )

        result = await self.workflow.run(working_copy, self.handler, change_set)
        if not result.success:
            return self._outcome(
                repository,
                OutcomeStatus.FAILED,
                stage=result.stage.value if result.stage else 'workflow',
                reason=result.error,
                branch=result.branch,
                branch_pushed=result.pushed,
            )

        return self._outcome(
            repository,
            OutcomeStatus.SUCCEEDED,
            stage=None,
            reason=f'{len(result.staged_paths)} file(s) committed',
            branch=result.branch,
            branch_pushed=True,
            pull_request_url=result.pull_request_url,
            warnings=result.warnings,
        )

    def _call_handler(self, stage: str, method, working_copy):
        """Invoke a handler method, wrapping anything it raises in HandlerError."""
        try:
            result = method(working_copy)
            if stage == 'apply':
                result = ChangeSet.coerce(result)
            return result
        except Exception as e:
            self.logger.opt(exception=e).debug(f'{working_copy.full_name}: handler {stage} raised')
            raise HandlerError(f'{type(e).__name__}: {e}', stage=stage) from e

    def _outcome(
        self, repository: RepositoryDescriptor, status: OutcomeStatus, **kwargs
    ) -> MigrationOutcome:
        return MigrationOutcome(
            repository=repository.full_name,
            name=repository.name,
            status=status,
            dry_run=self.dry_run,
            **kwargs,
        )

    def _log(self, outcome: MigrationOutcome) -> None:
        if outcome.status == OutcomeStatus.FAILED:
            self.logger.error(outcome.describe())
        elif outcome.status == OutcomeStatus.SUCCEEDED:
            self.logger.success(
                f'{outcome.describe()} -> {outcome.pull_request_url or outcome.branch}'
            )
        elif outcome.stage == 'selection':
            self.logger.debug(outcome.describe())
        else:
            self.logger.info(outcome.describe())
