"""Generic text-editing handlers configurable entirely from YAML.

Ticket-specific migrations subclass :class:`MutationHandler` directly;
these cover the recurring simple cases (substitute, delete, append).
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from ..migration.handler import ChangeSet, MutationHandler
from ..models.repository import WorkingCopy


def matching_files(working_copy: WorkingCopy, patterns: Iterable[str]) -> List[str]:
    """Files under the working copy matching any glob, relative and sorted.

    Never descends into ``.git``.
    """
    root = working_copy.path
    found = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            relative = path.relative_to(root)
            if relative.parts and relative.parts[0] == '.git':
                continue
            if path.is_file():
                found.add(relative.as_posix())
    return sorted(found)


class RegexReplaceHandler(MutationHandler):
    """Regex substitution across every file matching ``file_patterns``.

    The replacement must not re-match its own output, otherwise re-runs
    keep finding work.
    """

    def __init__(
        self,
        search: str,
        replace: str,
        file_patterns: List[str],
        multiline: bool = False,
        dotall: bool = False,
        **kwargs,
    ):
        if not file_patterns:
            raise ValueError('RegexReplaceHandler needs at least one file pattern')
        super().__init__(file_patterns=file_patterns, **kwargs)

        flags = 0
        if multiline:
            flags |= re.MULTILINE
        if dotall:
            flags |= re.DOTALL
        self.search = re.compile(search, flags)
        self.replace = replace

    def _rewrite(self, path: Path) -> Optional[str]:
        """New content for ``path``, or None when nothing would change."""
        try:
            text = path.read_text(encoding='utf-8')
        except UnicodeDecodeError:
            logger.debug(f'Skipping non-text file {path}')
            return None
        updated = self.search.sub(self.replace, text)
        return updated if updated != text else None

    def is_applicable(self, working_copy: WorkingCopy) -> bool:
        return any(
            self._rewrite(working_copy.resolve(p)) is not None
            for p in matching_files(working_copy, self.file_patterns)
        )

    def apply(self, working_copy: WorkingCopy) -> ChangeSet:
        change_set = ChangeSet()
        for relative in matching_files(working_copy, self.file_patterns):
            path = working_copy.resolve(relative)
            updated = self._rewrite(path)
            if updated is None:
                continue
            path.write_text(updated, encoding='utf-8')
            change_set.add(relative)
        return change_set


class RemoveFilesHandler(MutationHandler):
    """Deletes every file matching ``file_patterns``."""

    def __init__(self, file_patterns: List[str], **kwargs):
        if not file_patterns:
            raise ValueError('RemoveFilesHandler needs at least one file pattern')
        super().__init__(file_patterns=file_patterns, **kwargs)

    def is_applicable(self, working_copy: WorkingCopy) -> bool:
        return bool(matching_files(working_copy, self.file_patterns))

    def apply(self, working_copy: WorkingCopy) -> ChangeSet:
        change_set = ChangeSet()
        for relative in matching_files(working_copy, self.file_patterns):
            working_copy.resolve(relative).unlink()
            change_set.add(relative)
        return change_set


class EnsureLinesHandler(MutationHandler):
    """Appends lines a file is missing, creating the file if needed.

    Typical use is adding entries to ``.gitignore``.
    """

    def __init__(self, path: str, lines: List[str], header: Optional[str] = None, **kwargs):
        if not lines:
            raise ValueError('EnsureLinesHandler needs at least one line')
        kwargs.setdefault('file_patterns', [path])
        super().__init__(**kwargs)
        self.path = path
        self.lines = list(lines)
        self.header = header

    def _existing(self, working_copy: WorkingCopy) -> List[str]:
        target = working_copy.resolve(self.path)
        if not target.exists():
            return []
        return [line.rstrip('\r\n') for line in target.read_text(encoding='utf-8').splitlines()]

    def missing_lines(self, working_copy: WorkingCopy) -> List[str]:
        existing = set(self._existing(working_copy))
        return [line for line in self.lines if line not in existing]

    def is_applicable(self, working_copy: WorkingCopy) -> bool:
        return bool(self.missing_lines(working_copy))

    def apply(self, working_copy: WorkingCopy) -> ChangeSet:
        missing = self.missing_lines(working_copy)
        if not missing:
            return ChangeSet()

        target = working_copy.resolve(self.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        current = target.read_text(encoding='utf-8') if target.exists() else ''

        block = []
        if current and not current.endswith('\n'):
            block.append('')
        if self.header and self.header not in self._existing(working_copy):
            block.append(self.header)
        block.extend(missing)

        with open(target, 'a', encoding='utf-8') as fh:
            fh.write('\n'.join(block) + '\n')

        return ChangeSet([self.path])
