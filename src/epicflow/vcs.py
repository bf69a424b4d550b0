from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from epicflow.errors import VCSError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandResult:
    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True, frozen=True)
class ChangedFile:
    path: str
    status: str


def parse_name_status(output: str) -> list[ChangedFile]:
    """Parse ``git diff --name-status`` output.

    Renames and copies (``R100``/``C75``) carry two paths; the destination is
    reported under the bare status letter.
    """
    files: list[ChangedFile] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        status = parts[0].strip()
        if status[:1] in {"R", "C"} and len(parts) >= 3:
            files.append(ChangedFile(path=parts[2].strip(), status=status[:1]))
            continue
        files.append(ChangedFile(path=parts[1].strip(), status=status[:1] or status))
    return files


class GitRepository:
    def __init__(self, repo_root: Path, binary: str = "git") -> None:
        self.repo_root = repo_root.resolve()
        self.binary = binary

    async def _run_git(self, args: list[str], check: bool = True) -> CommandResult:
        command = (self.binary, "--no-pager", *args)
        logger.debug("$ %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.repo_root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise VCSError(f"git binary not found: {self.binary}", args=list(args)) from exc
        stdout, stderr = await process.communicate()
        result = CommandResult(
            args=tuple(args),
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and not result.ok:
            detail = result.stderr.strip() or result.stdout.strip()
            raise VCSError(
                f"git {' '.join(args)} failed with exit code {result.exit_code}: {detail}",
                args=list(args),
                exit_code=result.exit_code,
            )
        return result

    async def is_repository(self) -> bool:
        result = await self._run_git(["rev-parse", "--git-dir"], check=False)
        return result.ok

    async def status_porcelain(self) -> str:
        result = await self._run_git(["status", "--porcelain"])
        return result.stdout

    async def current_branch(self) -> str:
        result = await self._run_git(["rev-parse", "--abbrev-ref", "HEAD"])
        return result.stdout.strip()

    async def branch_exists(self, name: str) -> bool:
        result = await self._run_git(["rev-parse", "--verify", name], check=False)
        return result.ok

    async def create_branch(self, name: str) -> None:
        await self._run_git(["checkout", "-b", name])

    async def stage_all(self) -> None:
        await self._run_git(["add", "."])

    async def commit(self, message: str, *, allow_empty: bool = False) -> None:
        args = ["commit", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        await self._run_git(args)

    async def amend_no_edit(self) -> None:
        await self._run_git(["commit", "--amend", "--no-edit"])

    async def changed_files(self, base: str = "HEAD~1", head: str = "HEAD") -> list[ChangedFile]:
        result = await self._run_git(["diff", "--name-status", base, head])
        return parse_name_status(result.stdout)
