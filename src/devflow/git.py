"""Minimal git helpers for branch detection and plugin commits."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "default"
GIT_TIMEOUT = 10


@dataclass
class GitResult:
    """Exit code and decoded output of one git command."""

    returncode: int
    stdout: str
    stderr: str


async def _run_git(project_path: str | Path, args: list[str]) -> Optional[GitResult]:
    """Run git in ``project_path``; None when git is missing or times out."""
    try:
        process = await asyncio.create_subprocess_exec(
            "git", "--no-pager", *args,
            cwd=str(project_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug(f"git {' '.join(args)} failed in {project_path}: {e}")
        return None

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=GIT_TIMEOUT)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.debug(f"git {' '.join(args)} timed out in {project_path}")
        return None

    return GitResult(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def is_git_repository(project_path: str | Path) -> bool:
    result = await _run_git(project_path, ["rev-parse", "--is-inside-work-tree"])
    return result is not None and result.returncode == 0 and result.stdout.strip() == "true"


async def current_branch(project_path: str | Path) -> str:
    """
    Return the checked-out branch name.

    Falls back to ``default`` outside a git repository, and to
    ``detached-<sha>`` for a detached HEAD.
    """
    result = await _run_git(project_path, ["rev-parse", "--abbrev-ref", "HEAD"])
    if result is None or result.returncode != 0:
        return DEFAULT_BRANCH

    branch = result.stdout.strip()
    if branch == "HEAD":
        commit = await current_commit_hash(project_path)
        return f"detached-{commit[:7]}" if commit else DEFAULT_BRANCH
    return branch or DEFAULT_BRANCH


async def current_commit_hash(project_path: str | Path) -> Optional[str]:
    result = await _run_git(project_path, ["rev-parse", "HEAD"])
    if result is None or result.returncode != 0:
        return None
    return result.stdout.strip() or None


async def has_uncommitted_changes(project_path: str | Path) -> bool:
    result = await _run_git(project_path, ["status", "--porcelain"])
    return result is not None and result.returncode == 0 and bool(result.stdout.strip())


async def create_commit(project_path: str | Path, message: str) -> bool:
    """
    Stage all changes and commit them.

    Returns:
        True if a commit was created, False if there was nothing to commit
        or git failed
    """
    if not await has_uncommitted_changes(project_path):
        logger.debug("No changes to commit")
        return False

    add = await _run_git(project_path, ["add", "-A"])
    if add is None or add.returncode != 0:
        logger.warning(f"git add failed: {add.stderr.strip() if add else 'git unavailable'}")
        return False

    commit = await _run_git(project_path, ["commit", "-m", message])
    if commit is None or commit.returncode != 0:
        logger.warning(f"git commit failed: {commit.stderr.strip() if commit else 'git unavailable'}")
        return False

    logger.info(f"Created commit: {message}")
    return True
