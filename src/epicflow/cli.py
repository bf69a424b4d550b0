from __future__ import annotations

import asyncio
import json
import logging
import tomllib
from pathlib import Path
from typing import Any

import click

from epicflow.agents import CoderAgent, PlannerAgent, ReviewerAgent, TaskBreakdownAgent
from epicflow.backends import (
    AgentBackend,
    ClaudeCodeBackend,
    CodexBackend,
    ResilientBackend,
    RetryPolicy,
)
from epicflow.config import BackendName, EpicflowConfig, load_config, save_config
from epicflow.errors import EpicError
from epicflow.interaction import ClickPrompter
from epicflow.log import configure_logging
from epicflow.orchestrator import EpicAgents, EpicOrchestrator
from epicflow.state import ContextStore, TodoStore, prepare_state_dir
from epicflow.vcs import GitRepository

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "epicflow.toml"


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _load_config(config_path: Path) -> EpicflowConfig:
    try:
        return load_config(config_path)
    except (tomllib.TOMLDecodeError, TypeError) as exc:
        raise click.ClickException(f"Invalid config file {config_path}: {exc}") from exc


def _build_single_backend(
    backend_name: BackendName, config: EpicflowConfig, repo_root: Path
) -> CodexBackend | ClaudeCodeBackend:
    model = config.agents.model_for(backend_name)
    if backend_name == "codex":
        return CodexBackend(working_directory=repo_root, model=model)
    return ClaudeCodeBackend(working_directory=repo_root, model=model)


def _log_backend_event(event: dict[str, Any]) -> None:
    name = event.get("event")
    if name == "backend_attempt_failed":
        logger.warning(
            "%s backend attempt %s failed: %s",
            event.get("backend"),
            event.get("attempt"),
            event.get("error"),
        )
    elif name == "backend_failover_start":
        logger.warning("%s backend failed; switching to fallback.", event.get("from"))
    else:
        logger.debug("backend event: %s", event)


def _build_backend(config: EpicflowConfig, repo_root: Path) -> AgentBackend:
    primary_name = config.backend.primary
    fallback_name = config.backend.fallback
    timeout = max(0.0, float(config.backend.timeout_seconds))
    policy = RetryPolicy(
        max_retries=max(0, int(config.backend.max_retries)),
        backoff_seconds=max(0.0, float(config.backend.retry_backoff_seconds)),
        timeout_seconds=timeout or None,
    )
    return ResilientBackend(
        primary_name=primary_name,
        primary_backend=_build_single_backend(primary_name, config, repo_root),
        fallback_name=fallback_name,
        fallback_backend=_build_single_backend(fallback_name, config, repo_root),
        retry_policy=policy,
        event_hook=_log_backend_event,
    )


def _build_agents(backend: AgentBackend) -> EpicAgents:
    return EpicAgents(
        planner=PlannerAgent(backend),
        breakdown=TaskBreakdownAgent(backend),
        coder=CoderAgent(backend),
        reviewer=ReviewerAgent(backend),
    )


def _build_orchestrator(repo_root: Path, config_path: Path) -> EpicOrchestrator:
    config = _load_config(config_path)
    return EpicOrchestrator(
        repo_root=repo_root,
        git=GitRepository(repo_root),
        agents=_build_agents(_build_backend(config, repo_root)),
        prompter=ClickPrompter(),
        config=config,
    )


def _state_dir(repo_root: Path, config_value: str) -> Path:
    config = _load_config(_resolve_config_path(repo_root, config_value))
    return repo_root / config.state.directory


@click.group()
def cli() -> None:
    """Plan, implement and review a multi-step change on a feature branch."""


@cli.command("init")
@click.option("--backend", type=click.Choice(["claude", "codex"]), default=None)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def init_command(backend: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = _load_config(config_path)
    if backend:
        config.backend.primary = backend  # type: ignore[assignment]
        if config.backend.fallback == backend:
            config.backend.fallback = "codex" if backend == "claude" else "claude"
    save_config(config_path, config)
    prepare_state_dir(repo_root / config.state.directory)

    click.echo(f"Initialized epicflow in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Backend: {config.backend.primary} (fallback: {config.backend.fallback})")


@cli.command("run")
@click.argument("task", required=False)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
@click.option("--verbose", is_flag=True, default=False, help="Show debug output.")
def run_command(task: str | None, config_value: str, verbose: bool) -> None:
    configure_logging(verbose)
    repo_root = Path.cwd().resolve()
    orchestrator = _build_orchestrator(repo_root, _resolve_config_path(repo_root, config_value))
    try:
        outcome = asyncio.run(orchestrator.run(task))
    except EpicError as exc:
        raise click.ClickException(str(exc)) from exc

    if outcome.status == "noop":
        click.echo(f"Nothing to do: {outcome.reason}")
    elif outcome.status == "cancelled":
        click.echo("Epic cancelled.")
    elif outcome.summary is not None:
        click.echo(
            f"Epic complete on branch {outcome.summary.branch_name} "
            f"({outcome.summary.tasks_completed}/{outcome.summary.total_tasks} tasks)."
        )


@cli.command("status")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def status_command(config_value: str) -> None:
    state_dir = _state_dir(Path.cwd().resolve(), config_value)
    try:
        context = ContextStore(state_dir).load()
        items = TodoStore(state_dir).list_items()
    except EpicError as exc:
        raise click.ClickException(str(exc)) from exc

    payload = {
        "active": not context.is_empty,
        "context": None if context.is_empty else context.to_dict(),
        "progress": {
            "total": len(items),
            "completed": sum(1 for item in items if item.status == "completed"),
            "open": sum(1 for item in items if item.status == "open"),
        },
        "todos": [item.to_dict() for item in items],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("reset")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def reset_command(config_value: str) -> None:
    state_dir = _state_dir(Path.cwd().resolve(), config_value)
    ContextStore(state_dir).remove()
    TodoStore(state_dir).clear()
    click.echo("Epic state cleared.")

