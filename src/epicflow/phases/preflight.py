from __future__ import annotations

import logging

from epicflow.errors import PreflightError
from epicflow.vcs import GitRepository

logger = logging.getLogger(__name__)


class PreflightChecker:
    def __init__(self, git: GitRepository) -> None:
        self.git = git

    async def run(self) -> None:
        logger.info("Running pre-flight checks...")

        if not await self.git.is_repository():
            raise PreflightError(
                "Git is not initialized in this directory.",
                suggestion="Run `git init` to initialize a git repository.",
            )

        status = await self.git.status_porcelain()
        if status.strip():
            dirty = [line for line in status.splitlines() if line.strip()]
            details = "\n".join(dirty[:20])
            raise PreflightError(
                "Your working directory is not clean. Commit or stash your changes "
                f"before running an epic.\nDetected:\n{details}",
                suggestion=(
                    "Run `git add .` and `git commit` to clean your working directory, "
                    "or `git stash` to set the changes aside."
                ),
            )

        logger.info("Pre-flight checks passed.")
