"""Local working copy synchronization."""

from pathlib import Path
from typing import Optional, Union

from loguru import logger

from ..api.client import GitHubClient
from ..api.exceptions import GitHubAPIError, GitHubRateLimitError
from ..migration.exceptions import SyncError
from ..models.repository import RepositoryDescriptor, WorkingCopy
from .runner import CommandResult, GitRunner


class LocalSync:
    """Keeps one clean, up-to-date checkout per repository under a workspace root.

    After :meth:`sync` the copy is on the default branch with no local
    changes: an existing copy is hard-reset, cleaned and fast-forwarded,
    a missing one is cloned.
    """

    def __init__(
        self,
        client: GitHubClient,
        runner: GitRunner,
        workspace: Union[str, Path],
        marker_file: Optional[str] = None,
        clone_protocol: str = 'https',
        clean_untracked: bool = True,
    ):
        """Initialize local sync.

        Args:
            client: GitHub API client used for the marker file probe
            runner: Git command runner
            workspace: Root directory holding one subdirectory per repository
            marker_file: File a repository must contain (None disables the check)
            clone_protocol: ``https`` (token authenticated) or ``ssh``
            clean_untracked: Remove untracked files when syncing an existing copy
        """
        self.client = client
        self.runner = runner
        self.workspace = Path(workspace).expanduser()
        self.marker_file = marker_file
        self.clone_protocol = clone_protocol
        self.clean_untracked = clean_untracked
        self.logger = logger.bind(component='LocalSync')

    def prepare_workspace(self) -> Path:
        """Create the workspace root if needed."""
        self.workspace.mkdir(parents=True, exist_ok=True)
        return self.workspace

    def working_copy_path(self, repository: RepositoryDescriptor) -> Path:
        return self.workspace / repository.name

    async def has_marker_file(self, repository: RepositoryDescriptor) -> bool:
        """Check the repository contains the marker file before paying for a clone.

        Raises:
            SyncError: If the probe itself fails (anything but found/not found)
        """
        if not self.marker_file:
            return True

        try:
            return await self.client.content_exists_async(
                repository.organization, repository.name, self.marker_file
            )
        except GitHubRateLimitError as e:
            raise SyncError(
                f'Could not check for {self.marker_file}: rate limited, '
                f'quota resets in {e.retry_after}s',
                stage='precheck',
            ) from e
        except GitHubAPIError as e:
            raise SyncError(
                f'Could not check for {self.marker_file}: {e}', stage='precheck'
            ) from e

    async def sync(self, repository: RepositoryDescriptor) -> WorkingCopy:
        """Clone or refresh the working copy of ``repository``.

        Raises:
            SyncError: If any git step fails
        """
        path = self.working_copy_path(repository)

        if (path / '.git').exists():
            await self._refresh(repository, path)
        elif path.exists():
            raise SyncError(f'{path} exists but is not a git working copy')
        else:
            await self._clone(repository, path)

        return WorkingCopy(repository=repository, path=path)

    async def _refresh(self, repository: RepositoryDescriptor, path: Path) -> None:
        self.logger.info(f'Refreshing {repository.full_name} in {path}')

        steps = [('reset', '--hard', '-q', 'HEAD')]
        if self.clean_untracked:
            steps.append(('clean', '-fdq'))
        steps.append(('checkout', '-q', repository.default_branch))
        steps.append(('pull', '-q', '--ff-only'))

        for args in steps:
            result = await self.runner.run(*args, cwd=path)
            self._check(result, repository, f'git {args[0]}')

    async def _clone(self, repository: RepositoryDescriptor, path: Path) -> None:
        url = self.clone_url(repository)
        self.logger.info(f'Cloning {repository.full_name} into {path}')

        self.prepare_workspace()
        result = await self.runner.run('clone', '-q', url, str(path), cwd=self.workspace)
        self._check(result, repository, 'git clone')

    def _check(self, result: CommandResult, repository: RepositoryDescriptor, step: str) -> None:
        if not result.success:
            raise SyncError(f'{step} failed for {repository.full_name}: {result.diagnostic}')

    def clone_url(self, repository: RepositoryDescriptor) -> str:
        """Clone URL for ``repository`` according to the configured protocol."""
        raw = repository.raw

        if self.clone_protocol == 'ssh':
            url = raw.get('ssh_url') or f'git@github.com:{repository.full_name}.git'
            return url

        url = raw.get('clone_url') or f'https://github.com/{repository.full_name}.git'
        token = self.client.config.token
        for scheme in ('https://', 'http://'):
            if token and url.startswith(scheme) and '@' not in url[len(scheme):].split('/', 1)[0]:
                return url.replace(scheme, f'{scheme}x-access-token:{token}@', 1)
        return url
