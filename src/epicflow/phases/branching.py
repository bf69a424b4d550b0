from __future__ import annotations

import logging
import re

from epicflow.errors import BranchError
from epicflow.vcs import GitRepository

logger = logging.getLogger(__name__)

BRANCH_NAME_PATTERN = re.compile(r"^[A-Za-z0-9/_-]+$")
MAX_BRANCH_NAME_LENGTH = 255


def validate_branch_name(name: str) -> None:
    if not BRANCH_NAME_PATTERN.fullmatch(name or ""):
        raise BranchError(
            f'Invalid branch name format: "{name}". Branch names may contain only letters, '
            "numbers, hyphens, underscores, and forward slashes."
        )
    if len(name) > MAX_BRANCH_NAME_LENGTH:
        raise BranchError(
            f"Branch name is too long (max {MAX_BRANCH_NAME_LENGTH} characters)."
        )


class BranchManager:
    def __init__(self, git: GitRepository) -> None:
        self.git = git

    async def ensure_branch(self, name: str, *, resume: bool) -> None:
        validate_branch_name(name)

        if resume:
            current = await self.git.current_branch()
            if current != name:
                raise BranchError(
                    f"Currently on branch '{current}', but this epic lives on '{name}'.",
                    suggestion=f"Run `git checkout {name}` to resume.",
                )
            logger.info("Resuming on branch '%s'.", name)
            return

        logger.info("Creating feature branch '%s'...", name)
        if await self.git.branch_exists(name):
            raise BranchError(
                f"Branch '{name}' already exists.",
                suggestion=(
                    f"Delete it with `git branch -D {name}` or ask for a different "
                    "branch name in the plan feedback."
                ),
            )
        await self.git.create_branch(name)
        logger.info("Branch '%s' created.", name)
