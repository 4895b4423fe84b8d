"""Async client for the ``bd`` issue tracker CLI."""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from devflow.core.errors import TaskBackendError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0

# "✓ Created issue: proj-12" (current) or "Created bd-a1b2" (legacy)
_CREATED_PATTERNS = (
    re.compile(r"Created issue: ([\w.-]+)"),
    re.compile(r"Created (bd-[\w.]+)"),
)
_LIST_LINE = re.compile(r"^[○●◐]?\s*([^\s]+)\s+.*?\s+-\s+(.+)$")


@dataclass
class BeadsTask:
    """One task as reported by ``bd list``."""

    id: str
    title: str
    status: str = "open"
    parent: Optional[str] = None


@dataclass
class CommandResult:
    """Output of a finished ``bd`` invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class BeadsClient:
    """Runs ``bd`` commands in a project directory with a timeout."""

    def __init__(
        self,
        project_path: str | Path,
        command: str = "bd",
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        """
        Initialize beads client.

        Args:
            project_path: Directory the commands run in
            command: Executable name
            timeout: Per-command timeout in seconds
        """
        self.project_path = Path(project_path)
        self.command = command
        self.timeout = timeout

    async def run(self, *args: str) -> CommandResult:
        """
        Run a ``bd`` subcommand.

        Raises:
            TaskBackendError: If the command cannot start or times out
        """
        logger.debug(f"Running: {self.command} {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                cwd=str(self.project_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TaskBackendError(f"Failed to run {self.command}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise TaskBackendError(
                f"{self.command} {' '.join(args)} timed out after {self.timeout}s"
            ) from e

        return CommandResult(
            returncode=process.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def _run_checked(self, *args: str) -> str:
        result = await self.run(*args)
        if not result.success:
            raise TaskBackendError(
                f"{self.command} {args[0]} failed: {result.stderr.strip() or f'exit code {result.returncode}'}"
            )
        return result.stdout

    async def create(
        self,
        title: str,
        parent: Optional[str] = None,
        description: Optional[str] = None,
        priority: int = 2,
    ) -> str:
        """
        Create a task and return its id.

        Raises:
            TaskBackendError: If the command fails or prints no id
        """
        args = ["create", title]
        if description:
            args += ["--description", description]
        if parent:
            args += ["--parent", parent]
        args += ["--priority", str(priority)]

        output = await self._run_checked(*args)
        task_id = parse_created_id(output)
        if task_id is None:
            raise TaskBackendError(f"Failed to extract task ID from beads output: {output[:100]}")
        logger.info(f"Created beads task {task_id}: {title}")
        return task_id

    async def list_open(self, parent: str) -> list[BeadsTask]:
        """List open tasks under a parent."""
        output = await self._run_checked("list", "--parent", parent, "--status", "open")
        return parse_task_list(output, parent)


def parse_created_id(output: str) -> Optional[str]:
    """Extract the new task id from ``bd create`` output."""
    for pattern in _CREATED_PATTERNS:
        match = pattern.search(output)
        if match:
            return match.group(1)
    return None


def parse_task_list(output: str, parent: Optional[str] = None) -> list[BeadsTask]:
    """Parse the text output of ``bd list``."""
    tasks = []
    for line in output.splitlines():
        line = line.strip()
        if not line or "Tip:" in line:
            continue
        match = _LIST_LINE.match(line)
        if match:
            tasks.append(BeadsTask(id=match.group(1), title=match.group(2).strip(), parent=parent))
    return tasks
