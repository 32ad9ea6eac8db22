"""Shared formatting functions for MCP responses.

Artifacts are rendered as a heading plus pretty-printed JSON in the internal
(kebab-case) convention so the agent sees the same field names it sends.
"""
import json
from typing import Any, Optional

from rally_core.diagnostics import DiagnosticRecord


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def format_artifact(label: str, action: str, artifact: dict) -> str:
    """Format a single artifact, e.g. "User Story Created Successfully:"."""
    return f"{label} {action}:\n{format_json(artifact)}"


def format_artifact_list(label: str, artifacts: list[dict], total: Optional[int] = None) -> str:
    """Format query results with a count header."""
    count = f"{len(artifacts)}" if total is None or total == len(artifacts) else f"{len(artifacts)} of {total}"
    return f"Found {count} {label}:\n{format_json(artifacts)}"


def format_warnings(warnings: list[str]) -> str:
    if not warnings:
        return ""
    return "\n\nRally warnings:\n" + "\n".join(f"- {w}" for w in warnings)


def format_tool_error(tool_name: str, record: DiagnosticRecord) -> str:
    """Agent-facing error text. Only the fixed category message is shown."""
    lines = [f"Error executing {tool_name}: {record.message}"]
    lines.append(f"Category: {record.category.value} | Recovery: {record.recovery.strategy.value}")
    if record.recovery.max_retries:
        lines.append(f"Suggested retries: {record.recovery.max_retries}")
    lines.append(f"Correlation ID: {record.correlation_id}")
    return "\n".join(lines)
