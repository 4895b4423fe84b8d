"""Task backend detection."""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

TASK_BACKEND_ENV = "TASK_BACKEND"
BEADS_COMMAND = "bd"
DEFAULT_CHECK_TIMEOUT = 5.0


class TaskBackendKind(str, Enum):
    """Supported task tracking surfaces."""

    MARKDOWN = "markdown"
    BEADS = "beads"


@dataclass(frozen=True)
class TaskBackendInfo:
    """Result of backend detection."""

    kind: TaskBackendKind
    available: bool
    reason: Optional[str] = None
    requested: Optional[str] = None

    @property
    def uses_external_tracker(self) -> bool:
        """True when tasks live in the external ``bd`` tracker."""
        return self.kind == TaskBackendKind.BEADS and self.available

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "available": self.available,
            "reason": self.reason,
            "requested": self.requested,
        }


class TaskBackendAdapter:
    """
    Detects which task backend is active.

    The requested backend comes from the ``TASK_BACKEND`` environment
    variable, then from configuration, and defaults to markdown. A beads
    request is confirmed with ``bd --version``; if the check fails the
    adapter falls back to markdown instead of raising.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize backend adapter.

        Args:
            config: Task backend configuration (backend, check_timeout, command)
        """
        self.config = config or {}
        self.check_timeout = float(self.config.get("check_timeout", DEFAULT_CHECK_TIMEOUT))
        self.command = self.config.get("command", BEADS_COMMAND)
        self._info: Optional[TaskBackendInfo] = None

    def requested_backend(self) -> str:
        """Backend name requested by environment or configuration."""
        value = os.environ.get(TASK_BACKEND_ENV) or self.config.get("backend") or TaskBackendKind.MARKDOWN.value
        return str(value).strip().lower()

    async def detect(self) -> TaskBackendInfo:
        """
        Detect the active backend. The result is cached after the first call.

        Returns:
            TaskBackendInfo describing the active backend
        """
        if self._info is not None:
            return self._info

        self._info = await self._detect()
        logger.info(
            f"Task backend: {self._info.kind.value}"
            + (f" ({self._info.reason})" if self._info.reason else "")
        )
        return self._info

    async def _detect(self) -> TaskBackendInfo:
        requested = self.requested_backend()

        if requested == TaskBackendKind.MARKDOWN.value:
            return TaskBackendInfo(kind=TaskBackendKind.MARKDOWN, available=True, requested=requested)

        if requested == TaskBackendKind.BEADS.value:
            available, reason = await self.check_beads()
            if available:
                return TaskBackendInfo(kind=TaskBackendKind.BEADS, available=True, requested=requested)
            logger.warning(f"Beads backend requested but unavailable, using markdown: {reason}")
            return TaskBackendInfo(
                kind=TaskBackendKind.MARKDOWN,
                available=True,
                reason=f"beads unavailable: {reason}",
                requested=requested,
            )

        if requested == "auto":
            available, reason = await self.check_beads()
            if available:
                return TaskBackendInfo(kind=TaskBackendKind.BEADS, available=True, requested=requested)
            return TaskBackendInfo(
                kind=TaskBackendKind.MARKDOWN,
                available=True,
                reason=f"auto-detect: {reason}",
                requested=requested,
            )

        logger.warning(f"Unknown task backend '{requested}', using markdown")
        return TaskBackendInfo(
            kind=TaskBackendKind.MARKDOWN,
            available=True,
            reason=f"unknown backend '{requested}'",
            requested=requested,
        )

    async def check_beads(self) -> tuple[bool, str]:
        """
        Check that the ``bd`` CLI is installed and responds.

        Returns:
            (available, reason) where reason explains an unavailable result
        """
        if shutil.which(self.command) is None:
            return False, f"Beads command ({self.command}) not found in PATH"

        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return False, f"Beads command ({self.command}) could not be started: {e}"

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.check_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return False, f"Beads command ({self.command}) timed out after {self.check_timeout}s"

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            return False, f"Beads command ({self.command}) check failed: {detail or f'exit code {process.returncode}'}"

        logger.debug(f"Beads available: {stdout.decode('utf-8', errors='replace').strip()}")
        return True, ""

    def reset(self) -> None:
        """Forget the cached detection result."""
        self._info = None
