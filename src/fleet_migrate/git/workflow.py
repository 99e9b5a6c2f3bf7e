"""Branch, commit, push and pull request workflow for one repository."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from loguru import logger

from ..api.client import GitHubClient
from ..api.exceptions import GitHubAPIError, GitHubRateLimitError
from ..migration.exceptions import WorkflowError
from ..migration.handler import ChangeSet, MutationHandler
from ..models.repository import WorkingCopy
from .runner import CommandResult, GitRunner


class WorkflowStage(str, Enum):
    """Workflow stages in execution order."""

    BRANCH = 'branch'
    STAGE = 'stage'
    COMMIT = 'commit'
    PUSH = 'push'
    PULL_REQUEST = 'pull_request'


@dataclass
class WorkflowResult:
    """Result of running the workflow on one working copy."""

    success: bool
    branch: str
    stage: Optional[WorkflowStage] = None
    error: Optional[str] = None
    pushed: bool = False
    staged_paths: List[str] = field(default_factory=list)
    pull_request_url: Optional[str] = None
    pull_request_number: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


def strip_remote_lines(text: str) -> str:
    """Drop the informational ``remote:`` lines a push prints."""
    return '\n'.join(
        line for line in text.splitlines() if not line.startswith('remote:')
    ).strip()


class GitWorkflow:
    """Turns a handler's edits into a pushed branch and a pull request.

    Stages run in order: branch, stage, commit, push, pull request. The
    first failing stage ends the run; nothing is rolled back.
    """

    def __init__(
        self,
        client: GitHubClient,
        runner: GitRunner,
        remote: str = 'origin',
        user_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ):
        """Initialize git workflow.

        Args:
            client: GitHub API client used to open pull requests
            runner: Git command runner
            remote: Remote the branch is pushed to
            user_name: Commit author name set in the working copy, if any
            user_email: Commit author email set in the working copy, if any
        """
        self.client = client
        self.runner = runner
        self.remote = remote
        self.user_name = user_name
        self.user_email = user_email
        self.logger = logger.bind(component='GitWorkflow')

    async def run(
        self,
        working_copy: WorkingCopy,
        handler: MutationHandler,
        change_set: ChangeSet,
    ) -> WorkflowResult:
        """Run every stage for ``working_copy``.

        The caller must only invoke this with a non-empty change set.
        """
        branch = handler.branch_name
        result = WorkflowResult(success=False, branch=branch)

        try:
            await self.create_branch(working_copy, branch)
            result.staged_paths = await self.stage(
                working_copy, handler.staging_patterns(change_set)
            )
            if result.staged_paths:
                await self.commit(working_copy, handler.commit_message, result.staged_paths)
            else:
                await self.ensure_branch_has_commits(working_copy, branch)
            await self.push(working_copy, branch)
            result.pushed = True
            pull_request = await self.open_pull_request(working_copy, handler)
        except WorkflowError as e:
            result.stage = WorkflowStage(e.stage) if e.stage else None
            result.error = str(e)
            self.logger.error(f'{working_copy.full_name}: {e}')
            return result

        result.pull_request_url = pull_request.get('html_url')
        result.pull_request_number = pull_request.get('number')
        if handler.reviewer and result.pull_request_number is not None:
            warning = await self.request_review(
                working_copy, result.pull_request_number, handler.reviewer
            )
            if warning:
                result.warnings.append(warning)

        result.success = True
        return result

    async def create_branch(self, working_copy: WorkingCopy, branch: str) -> None:
        """Create and check out ``branch``, reusing it if it already exists.

        An existing branch is checked out with ``--merge`` so the handler's
        uncommitted edits are carried over. Edits the branch already holds
        from an earlier run merge away cleanly; real conflicts fail the stage.
        """
        result = await self.runner.run('checkout', '-q', '-b', branch, cwd=working_copy.path)
        if result.success:
            self.logger.info(f'{working_copy.full_name}: created branch {branch}')
            return

        if 'already exists' not in result.stderr:
            raise WorkflowError(
                f'Failed to create branch {branch}: {result.diagnostic}',
                stage=WorkflowStage.BRANCH.value,
            )

        self.logger.warning(
            f'{working_copy.full_name}: branch {branch} already exists, checking it out'
        )
        result = await self.runner.run(
            'checkout', '-q', '--merge', branch, cwd=working_copy.path
        )
        self._check(result, WorkflowStage.BRANCH, f'Failed to check out existing branch {branch}')

        unmerged = await self.runner.run(
            'diff', '--name-only', '--diff-filter=U', cwd=working_copy.path
        )
        self._check(unmerged, WorkflowStage.BRANCH, 'Failed to inspect merged checkout')
        if unmerged.lines():
            raise WorkflowError(
                f'Existing branch {branch} conflicts with the new edits in: '
                + ', '.join(unmerged.lines()),
                stage=WorkflowStage.BRANCH.value,
            )

    async def stage(self, working_copy: WorkingCopy, patterns: List[str]) -> List[str]:
        """Stage additions, modifications and deletions matching ``patterns``.

        Patterns are passed with the ``:(glob)`` magic so ``*`` stops at
        ``/`` and ``**/`` matches any depth, including none, as with
        :meth:`pathlib.Path.glob`. Patterns matching nothing (tracked or
        untracked) are skipped.

        Returns:
            Paths staged for the next commit
        """
        for pattern in patterns:
            pathspec = f':(glob){pattern}'
            listed = await self.runner.run(
                'ls-files', '--cached', '--others', '--exclude-standard', '--', pathspec,
                cwd=working_copy.path,
            )
            self._check(listed, WorkflowStage.STAGE, f'Failed to list files for {pattern}')
            if not listed.lines():
                self.logger.debug(f'{working_copy.full_name}: nothing matches {pattern}')
                continue

            added = await self.runner.run('add', '-A', '--', pathspec, cwd=working_copy.path)
            self._check(added, WorkflowStage.STAGE, f'Failed to stage {pattern}')

        staged = await self.runner.run('diff', '--cached', '--name-only', cwd=working_copy.path)
        self._check(staged, WorkflowStage.STAGE, 'Failed to list staged files')
        return staged.lines()

    async def commit(
        self, working_copy: WorkingCopy, message: str, staged_paths: List[str]
    ) -> None:
        if not staged_paths:
            raise WorkflowError('Nothing staged to commit', stage=WorkflowStage.COMMIT.value)

        if self.user_name:
            await self.runner.run('config', 'user.name', self.user_name, cwd=working_copy.path)
        if self.user_email:
            await self.runner.run('config', 'user.email', self.user_email, cwd=working_copy.path)

        result = await self.runner.run('commit', '-q', '-m', message, cwd=working_copy.path)
        self._check(result, WorkflowStage.COMMIT, 'Failed to commit')
        self.logger.info(
            f'{working_copy.full_name}: committed {len(staged_paths)} file(s)'
        )

    async def ensure_branch_has_commits(self, working_copy: WorkingCopy, branch: str) -> None:
        """Accept an empty index when ``branch`` already carries the change.

        This is the re-run case: an earlier run committed the same edits and
        stopped before the pull request was opened.

        Raises:
            WorkflowError: If the branch has nothing over the default branch
        """
        base = f'{self.remote}/{working_copy.default_branch}'
        ahead = await self.runner.run(
            'rev-list', '--count', f'{base}..HEAD', cwd=working_copy.path
        )
        count = ahead.stdout.strip()
        if not ahead.success or not count.isdigit() or int(count) == 0:
            raise WorkflowError('Nothing staged to commit', stage=WorkflowStage.COMMIT.value)

        self.logger.info(
            f'{working_copy.full_name}: {branch} already holds {count} commit(s) '
            f'over {base}, skipping commit'
        )

    async def push(self, working_copy: WorkingCopy, branch: str) -> None:
        result = await self.runner.run(
            'push', '-q', '-u', self.remote, branch, cwd=working_copy.path
        )
        if not result.success:
            detail = strip_remote_lines(result.stderr) or result.diagnostic
            raise WorkflowError(
                f'Failed to push {branch}: {detail}', stage=WorkflowStage.PUSH.value
            )
        self.logger.info(f'{working_copy.full_name}: pushed {branch} to {self.remote}')

    async def open_pull_request(
        self, working_copy: WorkingCopy, handler: MutationHandler
    ) -> dict:
        try:
            pull_request = await self.client.create_pull_request_async(
                working_copy.organization,
                working_copy.name,
                head=handler.branch_name,
                base=working_copy.default_branch,
                title=handler.commit_message,
                body=handler.pull_request_body,
            )
        except GitHubRateLimitError as e:
            raise WorkflowError(
                f'Failed to open pull request: rate limited, quota resets in {e.retry_after}s',
                stage=WorkflowStage.PULL_REQUEST.value,
            ) from e
        except GitHubAPIError as e:
            raise WorkflowError(
                f'Failed to open pull request: {e}',
                stage=WorkflowStage.PULL_REQUEST.value,
            ) from e

        if not isinstance(pull_request, dict):
            raise WorkflowError(
                'Unexpected pull request response', stage=WorkflowStage.PULL_REQUEST.value
            )

        self.logger.info(
            f'{working_copy.full_name}: pull request {pull_request.get("html_url")}'
        )
        return pull_request

    async def request_review(
        self, working_copy: WorkingCopy, number: int, reviewer: str
    ) -> Optional[str]:
        """Request a review; returns a warning instead of failing."""
        try:
            await self.client.request_reviewers_async(
                working_copy.organization, working_copy.name, number, reviewer
            )
        except GitHubAPIError as e:
            warning = f'Could not request review from {reviewer}: {e}'
            self.logger.warning(f'{working_copy.full_name}: {warning}')
            return warning
        return None

    def _check(self, result: CommandResult, stage: WorkflowStage, message: str) -> None:
        if not result.success:
            raise WorkflowError(f'{message}: {result.diagnostic}', stage=stage.value)
