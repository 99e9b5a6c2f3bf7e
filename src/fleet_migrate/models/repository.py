"""Repository entity models."""

from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field, validator


class RepositoryDescriptor(BaseModel):
    """One repository as reported by the organization listing."""

    organization: str = Field(..., description='Owner login')
    name: str = Field(..., description='Repository name')
    default_branch: str = Field(default='main', description='Default branch name')
    raw: Dict[str, Any] = Field(
        default_factory=dict, description='Listing record, opaque to the core'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @validator('name', 'organization')
    def validate_not_blank(cls, v):
        """Names are used as directory and URL components."""
        if not v or not v.strip():
            raise ValueError('must not be empty')
        if '/' in v or v in ('.', '..'):
            raise ValueError(f'invalid name: {v!r}')
        return v

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> 'RepositoryDescriptor':
        """Build a descriptor from a listing record.

        Raises:
            KeyError: If the record lacks ``name`` or ``owner.login``
            TypeError: If the record is not a mapping
        """
        if not isinstance(record, dict):
            raise TypeError(f'repository record must be an object, got {type(record).__name__}')

        return cls(
            organization=record['owner']['login'],
            name=record['name'],
            default_branch=record.get('default_branch') or 'main',
            raw=record,
        )

    @property
    def full_name(self) -> str:
        """``organization/name``."""
        return f'{self.organization}/{self.name}'


class WorkingCopy(BaseModel):
    """A synced local checkout of a repository."""

    repository: RepositoryDescriptor = Field(..., description='Repository it mirrors')
    path: Path = Field(..., description='Directory of the work tree')

    @property
    def name(self) -> str:
        return self.repository.name

    @property
    def organization(self) -> str:
        return self.repository.organization

    @property
    def full_name(self) -> str:
        return self.repository.full_name

    @property
    def default_branch(self) -> str:
        return self.repository.default_branch

    def resolve(self, relative: str) -> Path:
        """Absolute path of a file inside the work tree."""
        return self.path / relative
