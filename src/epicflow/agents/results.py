from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)


@dataclass(slots=True, frozen=True)
class AgentExit:
    payload: Any


@dataclass(slots=True, frozen=True)
class AgentUsageExceeded:
    message: str = ""


@dataclass(slots=True, frozen=True)
class AgentError:
    message: str


@dataclass(slots=True, frozen=True)
class AgentInterrupted:
    pass


AgentResult = AgentExit | AgentUsageExceeded | AgentError | AgentInterrupted


def describe_result(result: AgentResult) -> str:
    if isinstance(result, AgentExit):
        return "exit"
    if isinstance(result, AgentUsageExceeded):
        return "usage exceeded"
    if isinstance(result, AgentError):
        return f"error: {result.message}"
    if isinstance(result, AgentInterrupted):
        return "interrupted"
    raise TypeError(f"Unknown agent result: {result!r}")


def _load_object(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(content: str) -> dict[str, Any] | None:
    """Return the JSON object an agent put in its reply.

    Prefers the last fenced code block, then the whole reply, then the last
    single-line ``{...}`` object.
    """
    for block in reversed(FENCED_JSON_PATTERN.findall(content)):
        parsed = _load_object(block.strip())
        if parsed is not None:
            return parsed

    stripped = content.strip()
    if stripped.startswith("{"):
        parsed = _load_object(stripped)
        if parsed is not None:
            return parsed

    for raw_line in reversed(content.splitlines()):
        line = raw_line.strip()
        if not (line.startswith("{") and line.endswith("}")):
            continue
        parsed = _load_object(line)
        if parsed is not None:
            return parsed

    start = stripped.find("{")
    end = stripped.rfind("}")
    if 0 <= start < end:
        return _load_object(stripped[start : end + 1])
    return None
