# src/agenttrace/core/identifiers.py
"""Pure helpers deriving correlation tags and attribute strings.

Nothing in this module holds state: every function maps free text or
plain data to the value that ends up on a span.
"""

import json
import re
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from agenttrace.core.config import ARGS_PREVIEW_MAX_CHARS

# Work tickets look like bd-a1b2, bd-xyz123
_WORK_TICKET_PATTERN = re.compile(r"\bbd-[a-z0-9]+\b", re.IGNORECASE)

# Host titles for delegated sessions read "@planner subagent", "builder subagent", ...
_DELEGATE_TITLE_PATTERN = re.compile(r"@?(\w+)\s+subagent", re.IGNORECASE)

DEFAULT_PHASE = "work"

PHASE_BY_DELEGATE_TYPE: Mapping[str, str] = {
    "planner": "planning",
    "builder": "implementation",
    "reviewer": "review",
    "debugger": "diagnosis",
    "beads-manager": "coordination",
    "general": "work",
    "explore": "exploration",
}


def extract_work_ticket(text: str | None) -> str | None:
    """Return the first work-ticket id in text, lower-cased, or None."""
    if not text:
        return None
    match = _WORK_TICKET_PATTERN.search(text)
    return match.group(0).lower() if match else None


def extract_delegate_type(title: str | None) -> str | None:
    """Return the delegated-unit type named in a session title, or None."""
    if not title:
        return None
    match = _DELEGATE_TITLE_PATTERN.search(title)
    return match.group(1).lower() if match else None


def phase_for_delegate_type(
    delegate_type: str,
    overrides: Mapping[str, str] | None = None,
) -> str:
    """Map a delegated-unit type to its workflow phase name.

    Overrides take precedence over the built-in map; unmapped types
    fall back to the generic DEFAULT_PHASE.
    """
    if overrides and delegate_type in overrides:
        return overrides[delegate_type]
    return PHASE_BY_DELEGATE_TYPE.get(delegate_type, DEFAULT_PHASE)


def tools_summary(counts: Mapping[str, int]) -> str:
    """Render tool counts as "read:5,edit:3,bash:2", most used first.

    Ties keep first-use order.
    """
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ",".join(f"{tool}:{count}" for tool, count in ordered)


def truncate(text: str, limit: int = ARGS_PREVIEW_MAX_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


def args_preview(
    tool_name: str,
    args: Mapping[str, Any] | None,
    *,
    delegate_tool_name: str,
) -> str:
    """Build a bounded, human-readable preview of tool arguments.

    Delegate-work calls render as "<type>: <description>", tools with a
    description argument render that description, everything else is
    the JSON of its arguments. The result never exceeds
    ARGS_PREVIEW_MAX_CHARS regardless of the source size.
    """
    if not args:
        return ""
    if tool_name == delegate_tool_name and "subagent_type" in args:
        preview = f"{args.get('subagent_type')}: {args.get('description', '')}"
    elif isinstance(args.get("description"), str) and args["description"]:
        preview = args["description"]
    else:
        preview = json.dumps(args, default=str, sort_keys=True)
    return truncate(preview)


@dataclass(frozen=True, slots=True)
class GitContext:
    """Branch and commit of the working tree the host runs in."""

    branch: str = "unknown"
    commit: str = "unknown"

    def as_attributes(self) -> dict[str, str]:
        return {"git.branch": self.branch, "git.commit": self.commit}


def _git(args: list[str], cwd: str | None) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        # Not a git repo or git not available
        return None
    value = result.stdout.strip()
    return value or None


def capture_git_context(directory: str | None = None) -> GitContext:
    """Capture the current branch and short commit, "unknown" when unavailable."""
    return GitContext(
        branch=_git(["branch", "--show-current"], directory) or "unknown",
        commit=_git(["rev-parse", "--short", "HEAD"], directory) or "unknown",
    )
