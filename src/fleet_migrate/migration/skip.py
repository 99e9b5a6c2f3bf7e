"""Repositories that must never be processed."""

import re
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from loguru import logger

from .exceptions import SkipRegistryError


class SkipRegistry:
    """Name-pattern exclusions OR-combined with a persisted skip file.

    The skip file holds one repository name per line and is only ever
    appended to. It is created when missing and read once by :meth:`load`;
    a read failure degrades the registry to pattern-only filtering.
    """

    def __init__(
        self,
        skip_file: Union[str, Path],
        patterns: Optional[Iterable[str]] = None,
    ):
        """Initialize skip registry.

        Args:
            skip_file: Path of the newline-separated skip file
            patterns: Regular expressions searched in repository names
        """
        self.skip_file = Path(skip_file)
        self.patterns: List[re.Pattern] = [re.compile(p) for p in (patterns or [])]
        self.names: Set[str] = set()
        self.loaded = False
        self.logger = logger.bind(component='SkipRegistry')

    def load(self) -> 'SkipRegistry':
        """Read the persisted names, creating the file if it is absent."""
        self.names = set()
        try:
            self._touch()
            self.names = self._read()
        except SkipRegistryError as e:
            self.logger.warning(f'{e}; continuing with pattern-only skips')
        else:
            self.logger.info(
                f'Loaded {len(self.names)} skipped repositories from {self.skip_file}'
            )
        self.loaded = True
        return self

    def _touch(self) -> None:
        try:
            self.skip_file.parent.mkdir(parents=True, exist_ok=True)
            self.skip_file.touch(exist_ok=True)
        except OSError as e:
            raise SkipRegistryError(f'Cannot create skip file {self.skip_file}: {e}')

    def _read(self) -> Set[str]:
        try:
            with open(self.skip_file, 'r', encoding='utf-8') as fh:
                return {line.strip() for line in fh if line.strip()}
        except (OSError, UnicodeDecodeError) as e:
            raise SkipRegistryError(f'Failed to read skip file {self.skip_file}: {e}')

    def matching_pattern(self, name: str) -> Optional[str]:
        """Return the first exclusion pattern found in ``name``, if any."""
        for pattern in self.patterns:
            if pattern.search(name):
                return pattern.pattern
        return None

    def skip_reason(self, name: str) -> Optional[str]:
        """Explain why ``name`` is skipped, or None when it is not."""
        if name in self.names:
            return f'listed in {self.skip_file.name}'
        pattern = self.matching_pattern(name)
        if pattern is not None:
            return f'matches skip pattern {pattern!r}'
        return None

    def should_skip(self, name: str) -> bool:
        """True iff ``name`` matches a pattern or is in the persisted set."""
        return self.skip_reason(name) is not None

    def append(self, name: str) -> bool:
        """Permanently exclude ``name`` from future runs.

        Returns:
            False if the name was already listed

        Raises:
            SkipRegistryError: If the skip file cannot be written
        """
        name = name.strip()
        if not name:
            raise ValueError('repository name must not be empty')
        if name in self.names:
            return False

        try:
            self._touch()
            needs_newline = self._ends_without_newline()
            with open(self.skip_file, 'a', encoding='utf-8') as fh:
                if needs_newline:
                    fh.write('\n')
                fh.write(f'{name}\n')
        except OSError as e:
            raise SkipRegistryError(f'Failed to append to skip file {self.skip_file}: {e}')

        self.names.add(name)
        self.logger.info(f'Added {name} to {self.skip_file}')
        return True

    def _ends_without_newline(self) -> bool:
        size = self.skip_file.stat().st_size
        if size == 0:
            return False
        with open(self.skip_file, 'rb') as fh:
            fh.seek(size - 1)
            return fh.read(1) != b'\n'

    def __contains__(self, name: str) -> bool:
        return self.should_skip(name)
