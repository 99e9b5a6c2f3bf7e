"""Migration engine - main entry point for migration runs."""

import json
from pathlib import Path
from typing import Optional

from loguru import logger

from ..api.client import GitHubClientFactory
from ..api.pagination import PageWalker
from ..config.config import Config
from ..git.runner import GitRunner
from ..git.sync import LocalSync
from ..git.workflow import GitWorkflow
from ..models.outcome import RunReport
from .exceptions import DiscoveryError
from .handler import MutationHandler, load_handler
from .orchestrator import Orchestrator
from .skip import SkipRegistry


class MigrationEngine:
    """Builds every component from configuration and runs the orchestrator."""

    def __init__(self, config: Config, handler: Optional[MutationHandler] = None):
        """Initialize migration engine.

        Args:
            config: Tool configuration
            handler: Handler to run; loaded from ``config.handler`` when omitted

        Raises:
            ValueError: If no handler is given or configured
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        if handler is None:
            if not config.handler.path:
                raise ValueError('No handler configured (set handler.path or use --handler)')
            handler = load_handler(config.handler.path, config.handler.options)
        self.handler = handler

        self.client = GitHubClientFactory.create_client(config.github)
        self.runner = GitRunner(timeout=config.git.timeout, secrets=[config.github.token])

        self.skip_registry = SkipRegistry(
            config.workspace.skip_file, config.workspace.skip_patterns
        )
        self.local_sync = LocalSync(
            self.client,
            self.runner,
            config.workspace.root_path,
            marker_file=config.workspace.marker_file,
            clone_protocol=config.git.clone_protocol,
            clean_untracked=config.workspace.clean_untracked,
        )
        self.workflow = GitWorkflow(
            self.client,
            self.runner,
            remote=config.git.remote,
            user_name=config.git.user_name,
            user_email=config.git.user_email,
        )
        self.orchestrator = Orchestrator(
            self.handler,
            self.skip_registry,
            self.local_sync,
            self.workflow,
            dry_run=config.migration.dry_run,
            only=config.migration.repositories,
        )

    def page_walker(self) -> PageWalker:
        """Walker over every repository of the configured organization."""
        return PageWalker(
            self.client,
            self.client.organization_repos_endpoint(self.config.github.organization),
            params={'per_page': self.config.github.per_page},
        )

    async def migrate(self) -> RunReport:
        """Run the configured handler across the organization.

        Returns:
            Run report

        Raises:
            DiscoveryError: If the repository listing fails
        """
        self.logger.info(
            f'Starting fleet migration of {self.config.github.organization} '
            f'with {self.handler!r}'
        )

        try:
            self.skip_registry.load()
            self.local_sync.prepare_workspace()
            report = await self.orchestrator.run(self.page_walker())
            self.write_report(report)
            return report
        except DiscoveryError as e:
            if e.report is not None:
                self.write_report(e.report)
            raise
        finally:
            self.client.close()

    def write_report(self, report: RunReport, path: Optional[str] = None) -> Optional[Path]:
        """Write ``report`` as JSON when a report file is configured."""
        path = path or self.config.migration.report_file
        if not path:
            return None

        report_path = Path(path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, 'w', encoding='utf-8') as f:
            json.dump(report.dict(), f, indent=2, default=str)

        self.logger.info(f'Report written to {report_path}')
        return report_path

    def test_connectivity(self) -> None:
        """Test connectivity to the GitHub API.

        Raises:
            ConnectionError: If the API cannot be reached with the token
        """
        self.logger.info('Testing connectivity to GitHub')

        if not self.client.test_connection():
            raise ConnectionError(f'Cannot connect to {self.config.github.api_url}')

        self.logger.info('Connectivity test passed')
