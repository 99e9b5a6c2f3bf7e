"""Configuration management for the fleet migration tool."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator


class GitHubConfig(BaseModel):
    """Configuration for the GitHub API and the organization to sweep."""

    api_url: str = Field(
        default='https://api.github.com', description='GitHub API base URL'
    )
    organization: str = Field(..., description='Organization whose repositories are processed')
    token: Optional[str] = Field(
        default=None,
        description='Bearer token; falls back to the GITHUB_TOKEN environment variable',
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    per_page: int = Field(default=100, description='Repositories per listing page')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @validator('api_url')
    def validate_api_url(cls, v):
        """Validate API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('organization')
    def validate_organization(cls, v):
        """Validate organization is not blank."""
        if not v or not v.strip():
            raise ValueError('organization must not be empty')
        return v.strip()

    @validator('token', pre=True, always=True)
    def validate_token(cls, v):
        """Resolve the token from the environment and require it to be non-empty."""
        if v is None or (isinstance(v, str) and not v.strip()):
            v = os.getenv('GITHUB_TOKEN')
        if not v or not v.strip():
            raise ValueError('GITHUB_TOKEN must be set')
        return v.strip()

    @validator('per_page')
    def validate_per_page(cls, v):
        """GitHub caps page size at 100."""
        if not 1 <= v <= 100:
            raise ValueError('per_page must be between 1 and 100')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v


class WorkspaceConfig(BaseModel):
    """Local workspace and skip settings."""

    root: str = Field(
        default='~/repositories',
        description='Directory holding one working copy per repository',
    )
    skip_file: str = Field(
        default='repos.skip',
        description='Newline-separated repository names that are never processed',
    )
    skip_patterns: List[str] = Field(
        default_factory=list,
        description='Regular expressions; matching repository names are never processed',
    )
    marker_file: Optional[str] = Field(
        default='repository_metadata.yaml',
        description='File a repository must contain to be processed (null disables the check)',
    )
    clean_untracked: bool = Field(
        default=True, description='Remove untracked files when syncing an existing copy'
    )

    @validator('skip_patterns', each_item=True)
    def validate_skip_pattern(cls, v):
        """Validate each skip pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f'Invalid skip pattern {v!r}: {e}')
        return v

    @validator('marker_file')
    def validate_marker_file(cls, v):
        """Treat an empty marker file as disabled."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def root_path(self) -> Path:
        """Workspace root with ``~`` expanded."""
        return Path(self.root).expanduser()


class GitConfig(BaseModel):
    """Git operations configuration."""

    user_name: Optional[str] = Field(
        default=None, description='Git user name for commits (global config when unset)'
    )
    user_email: Optional[str] = Field(
        default=None, description='Git user email for commits (global config when unset)'
    )
    timeout: int = Field(
        default=3600, description='Git operation timeout in seconds (default: 1 hour)'
    )
    clone_protocol: str = Field(default='https', description='https or ssh')
    remote: str = Field(default='origin', description='Remote to push branches to')

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v

    @validator('clone_protocol')
    def validate_clone_protocol(cls, v):
        """Validate clone protocol."""
        v = v.lower()
        if v not in ('https', 'ssh'):
            raise ValueError('clone_protocol must be one of: https, ssh')
        return v


class HandlerConfig(BaseModel):
    """Which mutation handler to run and how to build it."""

    path: Optional[str] = Field(
        default=None, description='Import path of the handler class (package.module:Class)'
    )
    options: Dict[str, Any] = Field(
        default_factory=dict, description='Keyword arguments passed to the handler'
    )

    @validator('path')
    def validate_path(cls, v):
        """Validate handler import path format."""
        if v is not None and ':' not in v:
            raise ValueError('handler path must look like package.module:ClassName')
        return v


class MigrationConfig(BaseModel):
    """Run-specific configuration."""

    dry_run: bool = Field(default=False, description='Check applicability without changing anything')
    repositories: List[str] = Field(
        default_factory=list,
        description='Only process these repository names (all when empty)',
    )
    report_file: Optional[str] = Field(
        default=None, description='Write the run report as JSON to this path'
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the fleet migration tool."""

    github: GitHubConfig = Field(..., description='GitHub API settings')
    workspace: WorkspaceConfig = Field(
        default_factory=WorkspaceConfig, description='Workspace and skip settings'
    )
    git: GitConfig = Field(default_factory=GitConfig, description='Git operations settings')
    handler: HandlerConfig = Field(
        default_factory=HandlerConfig, description='Mutation handler settings'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Run settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        # Token may live in .env rather than the file
        load_dotenv()

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        skip_patterns = os.getenv('FLEET_SKIP_PATTERNS')
        repositories = os.getenv('FLEET_REPOSITORIES')

        config_data = {
            'github': {
                'api_url': os.getenv('GITHUB_API_URL'),
                'organization': os.getenv('GITHUB_ORGANIZATION'),
                'token': os.getenv('GITHUB_TOKEN'),
                'timeout': os.getenv('GITHUB_TIMEOUT'),
            },
            'workspace': {
                'root': os.getenv('FLEET_WORKSPACE'),
                'skip_file': os.getenv('FLEET_SKIP_FILE'),
                'skip_patterns': skip_patterns.split(',') if skip_patterns else None,
                'marker_file': os.getenv('FLEET_MARKER_FILE'),
            },
            'git': {
                'user_name': os.getenv('GIT_USER_NAME'),
                'user_email': os.getenv('GIT_USER_EMAIL'),
                'timeout': os.getenv('GIT_TIMEOUT'),
                'clone_protocol': os.getenv('GIT_CLONE_PROTOCOL'),
            },
            'handler': {
                'path': os.getenv('FLEET_HANDLER'),
            },
            'migration': {
                'dry_run': os.getenv('FLEET_DRY_RUN', 'false').lower() == 'true',
                'repositories': repositories.split(',') if repositories else None,
                'report_file': os.getenv('FLEET_REPORT_FILE'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file (the token is never written)."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        data = self.dict()
        data['github'].pop('token', None)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=False)

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'github': {
                'api_url': 'https://api.github.com',
                'organization': 'your-organization',
                'timeout': 30,
                'per_page': 100,
                'rate_limit_per_second': 10.0,
            },
            'workspace': {
                'root': '~/repositories',
                'skip_file': 'repos.skip',
                'skip_patterns': ['gold.*path', 'infra-global'],
                'marker_file': 'repository_metadata.yaml',
                'clean_untracked': True,
            },
            'git': {
                'user_name': 'Fleet Migration',
                'user_email': 'fleet-migrate@example.com',
                'timeout': 3600,
                'clone_protocol': 'https',
                'remote': 'origin',
            },
            'handler': {
                'path': 'fleet_migrate.handlers.builtin:RegexReplaceHandler',
                'options': {
                    'branch_name': 'TICKET-1/describe-the-change',
                    'commit_message': 'TICKET-1/Describe the change',
                    'reviewer': 'your-organization/your-team',
                    'file_patterns': ['*/boilerplate.tf'],
                    'search': 'old-value',
                    'replace': 'new-value',
                },
            },
            'migration': {
                'dry_run': False,
                'repositories': [],
                'report_file': 'fleet-report.json',
            },
            'logging': {
                'level': 'INFO',
                'file': 'fleet-migrate.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
