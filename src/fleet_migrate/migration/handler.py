"""Mutation handler contract.

A handler holds the ticket-specific part of a fleet migration: whether a
repository needs the change and how to make it. The orchestrator only
sees this interface; it never inspects how a handler edits files.
"""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from ..models.repository import WorkingCopy


@dataclass
class ChangeSet:
    """Paths (relative to the working copy) a handler modified, added or removed."""

    paths: List[str] = field(default_factory=list)

    def add(self, path: Any) -> None:
        path = str(path)
        if path not in self.paths:
            self.paths.append(path)

    def extend(self, paths: Iterable[Any]) -> None:
        for path in paths:
            self.add(path)

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __bool__(self) -> bool:
        return bool(self.paths)

    @classmethod
    def coerce(cls, value: Union['ChangeSet', Iterable[Any], None]) -> 'ChangeSet':
        """Accept a ChangeSet, any iterable of paths, or None."""
        if isinstance(value, ChangeSet):
            return value
        change_set = cls()
        if value is None:
            return change_set
        if isinstance(value, (str, bytes)):
            raise TypeError('apply() must return paths, not a single string')
        change_set.extend(p for p in value if p is not None)
        return change_set


class MutationHandler(ABC):
    """Base class every migration implements.

    Subclasses usually set the metadata as class attributes; generic
    handlers receive it through the constructor instead.
    """

    branch_name: str = ''
    commit_message: str = ''
    reviewer: Optional[str] = None
    file_patterns: List[str] = []
    pull_request_body: Optional[str] = None

    def __init__(
        self,
        branch_name: Optional[str] = None,
        commit_message: Optional[str] = None,
        reviewer: Optional[str] = None,
        file_patterns: Optional[List[str]] = None,
        pull_request_body: Optional[str] = None,
    ):
        if branch_name is not None:
            self.branch_name = branch_name
        if commit_message is not None:
            self.commit_message = commit_message
        if reviewer is not None:
            self.reviewer = reviewer
        if file_patterns is not None:
            self.file_patterns = list(file_patterns)
        if pull_request_body is not None:
            self.pull_request_body = pull_request_body

        if not self.branch_name:
            raise ValueError(f'{type(self).__name__} needs a branch_name')
        if not self.commit_message:
            raise ValueError(f'{type(self).__name__} needs a commit_message')

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def is_applicable(self, working_copy: WorkingCopy) -> bool:
        """Cheap, read-only check whether the repository needs this change."""

    @abstractmethod
    def apply(self, working_copy: WorkingCopy) -> Union[ChangeSet, Iterable[str]]:
        """Edit the working copy in place and report the touched paths.

        Must be safe to call again on a copy a previous run already
        partially changed.
        """

    def staging_patterns(self, change_set: ChangeSet) -> List[str]:
        """Pathspecs to stage: the handler's globs, else the reported paths."""
        return list(self.file_patterns) or list(change_set.paths)

    def __repr__(self) -> str:
        return f'<{self.name} branch={self.branch_name!r}>'


def load_handler(path: str, options: Optional[Dict[str, Any]] = None) -> MutationHandler:
    """Import and instantiate a handler from ``package.module:ClassName``.

    Raises:
        ValueError: If the path is malformed
        ImportError: If the module or class cannot be found
        TypeError: If the class is not a MutationHandler
    """
    module_name, sep, class_name = path.partition(':')
    if not sep or not module_name or not class_name:
        raise ValueError(f'Handler path must look like package.module:ClassName, got {path!r}')

    module = importlib.import_module(module_name)
    try:
        handler_class = getattr(module, class_name)
    except AttributeError:
        raise ImportError(f'{module_name} has no attribute {class_name}')

    if not isinstance(handler_class, type) or not issubclass(handler_class, MutationHandler):
        raise TypeError(f'{path} is not a MutationHandler subclass')

    return handler_class(**(options or {}))
