from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

BackendName = Literal["codex", "claude"]

DEFAULT_REVIEWABLE_EXTENSIONS = [
    ".py", ".pyi", ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".vue", ".svelte",
    ".go", ".rs", ".java", ".kt", ".kts", ".scala", ".swift", ".c", ".h", ".cc", ".cpp",
    ".hpp", ".cs", ".rb", ".php", ".lua", ".dart", ".ex", ".exs", ".erl", ".clj",
    ".sh", ".bash", ".zsh", ".ps1", ".sql", ".graphql", ".proto",
    ".html", ".css", ".scss", ".sass", ".less", ".jinja", ".j2", ".hbs",
    ".json", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".env.example",
    ".xml", ".gradle", ".tf", ".hcl", ".dockerfile", ".md",
]

DEFAULT_EXCLUDED_FILENAMES = [
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lockb",
    "bun.lock",
    "poetry.lock",
    "uv.lock",
    "Pipfile.lock",
    "Cargo.lock",
    "Gemfile.lock",
    "composer.lock",
    "go.sum",
]

DEFAULT_EXCLUDED_DIRECTORIES = [
    "node_modules",
    "dist",
    "build",
    "out",
    "coverage",
    "vendor",
    "__pycache__",
    ".next",
    "__snapshots__",
]

DEFAULT_EXTENSIONLESS_FILENAMES = ["Dockerfile", "Makefile", "Justfile", "Procfile"]


@dataclass(slots=True)
class BackendConfig:
    primary: BackendName = "claude"
    fallback: BackendName = "codex"
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5
    timeout_seconds: float = 0.0


@dataclass(slots=True)
class AgentsConfig:
    claude_model: str = "claude-sonnet-4-5"
    # Empty uses the CLI's own default.
    codex_model: str = ""

    def model_for(self, backend: BackendName) -> str:
        return self.codex_model if backend == "codex" else self.claude_model


@dataclass(slots=True)
class WorkflowConfig:
    max_review_retries: int = 5
    reviewable_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_REVIEWABLE_EXTENSIONS)
    )
    reviewable_filenames: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXTENSIONLESS_FILENAMES)
    )
    excluded_filenames: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_FILENAMES)
    )
    excluded_directories: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_DIRECTORIES)
    )


@dataclass(slots=True)
class StateConfig:
    directory: str = ".epicflow"


@dataclass(slots=True)
class EpicflowConfig:
    backend: BackendConfig = field(default_factory=BackendConfig)
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    state: StateConfig = field(default_factory=StateConfig)

    @classmethod
    def default(cls) -> EpicflowConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> EpicflowConfig:
        return cls(
            backend=BackendConfig(**data.get("backend", {})),
            agents=AgentsConfig(**data.get("agents", {})),
            workflow=WorkflowConfig(**data.get("workflow", {})),
            state=StateConfig(**data.get("state", {})),
        )

    def to_dict(self) -> dict:
        return {
            "backend": {
                "primary": self.backend.primary,
                "fallback": self.backend.fallback,
                "max_retries": self.backend.max_retries,
                "retry_backoff_seconds": self.backend.retry_backoff_seconds,
                "timeout_seconds": self.backend.timeout_seconds,
            },
            "agents": {
                "claude_model": self.agents.claude_model,
                "codex_model": self.agents.codex_model,
            },
            "workflow": {
                "max_review_retries": self.workflow.max_review_retries,
                "reviewable_extensions": list(self.workflow.reviewable_extensions),
                "reviewable_filenames": list(self.workflow.reviewable_filenames),
                "excluded_filenames": list(self.workflow.excluded_filenames),
                "excluded_directories": list(self.workflow.excluded_directories),
            },
            "state": {
                "directory": self.state.directory,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        if not rendered:
            return "0.0"
        return rendered if "." in rendered else f"{rendered}.0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: EpicflowConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ["backend", "agents", "workflow", "state"]:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> EpicflowConfig:
    if not path.exists():
        return EpicflowConfig.default()
    return EpicflowConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: EpicflowConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
