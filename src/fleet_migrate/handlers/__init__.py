"""Ready-made handlers configurable from YAML."""

from .builtin import EnsureLinesHandler, RegexReplaceHandler, RemoveFilesHandler

__all__ = ['EnsureLinesHandler', 'RegexReplaceHandler', 'RemoveFilesHandler']
