"""Git subprocess execution."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from loguru import logger

MASK = '***'


@dataclass
class CommandResult:
    """Result of one git invocation."""

    command: str
    success: bool
    returncode: Optional[int] = None
    stdout: str = ''
    stderr: str = ''
    error: Optional[str] = None

    @property
    def diagnostic(self) -> str:
        """Best available explanation of a failure."""
        if self.error:
            return self.error
        text = self.stderr.strip() or self.stdout.strip()
        return text or f'exit status {self.returncode}'

    def lines(self) -> List[str]:
        return [line for line in self.stdout.splitlines() if line.strip()]


class GitRunner:
    """Runs git commands and reports them as :class:`CommandResult`.

    Failures (non-zero exit, timeout, missing binary) never raise; callers
    decide what a failed result means for their stage.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        secrets: Optional[Iterable[str]] = None,
        executable: str = 'git',
    ):
        """Initialize git runner.

        Args:
            timeout: Seconds before a command is killed (None waits forever)
            secrets: Strings masked in every logged command line and output
            executable: Git binary to invoke
        """
        self.timeout = timeout
        self.secrets = [s for s in (secrets or []) if s]
        self.executable = executable
        self.logger = logger.bind(component='GitRunner')

    def mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text

    async def run(self, *args: str, cwd: Union[str, Path, None] = None) -> CommandResult:
        """Run ``git <args>`` in ``cwd``."""
        cmd = [self.executable, *[str(a) for a in args]]
        command = self.mask(' '.join(cmd))
        self.logger.debug(f'Running git command: {command} in {cwd}')

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=str(cwd) if cwd is not None else None,
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            self.logger.error(f'Git command could not start: {command}: {e}')
            return CommandResult(command=command, success=False, error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            message = f'timed out after {self.timeout} seconds'
            self.logger.error(f'Git command {message}: {command}')
            return CommandResult(command=command, success=False, error=message)

        stdout_text = self.mask(stdout.decode(errors='replace')) if stdout else ''
        stderr_text = self.mask(stderr.decode(errors='replace')) if stderr else ''

        self.logger.debug(f'Git command return code: {process.returncode}')
        if stderr_text:
            self.logger.debug(f'Git command stderr: {stderr_text.strip()}')

        return CommandResult(
            command=command,
            success=process.returncode == 0,
            returncode=process.returncode,
            stdout=stdout_text,
            stderr=stderr_text,
        )
