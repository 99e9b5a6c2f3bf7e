"""Git operations module for working copies and change delivery."""

from .runner import CommandResult, GitRunner
from .sync import LocalSync
from .workflow import GitWorkflow, WorkflowResult, WorkflowStage

__all__ = [
    'CommandResult',
    'GitRunner',
    'LocalSync',
    'GitWorkflow',
    'WorkflowResult',
    'WorkflowStage',
]
