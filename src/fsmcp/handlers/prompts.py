"""Prompts surfaced by clients as slash-commands: review, summarise, explain."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from fsmcp.protocol.models import PromptArgument, PromptMessage
from fsmcp.server.specs import PromptSpec

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from fsmcp.config import SearchSettings
    from fsmcp.handlers._paths import PathResolver
    from fsmcp.server.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

TREE_DEPTH = 3
FIND_DEPTH = 5


class ProjectPrompts:
    """Prompt generators reading from the served root."""

    def __init__(self, resolver: PathResolver, search: SearchSettings) -> None:
        self._resolver = resolver
        self._ignored = frozenset(search.ignored_dirs)

    async def review_file(self, arguments: dict[str, str]) -> list[PromptMessage]:
        path = self._resolver.resolve(arguments["path"])
        focus = arguments.get("focus") or "all"
        content = await asyncio.to_thread(_read_or_placeholder, path)

        if focus == "all":
            instruction = (
                "Cover: code quality, correctness, security, performance, and readability."
            )
        else:
            instruction = (
                f"Focus especially on **{focus}** concerns, "
                "but note any critical issues in other areas too."
            )
        return [
            PromptMessage.user(
                "Please perform a thorough code review of the following file.\n\n"
                f"**File:** `{path}`\n"
                f"**Review focus:** {focus}\n\n"
                f"{instruction}\n\n"
                f"--- File Content ---\n```\n{content}\n```"
            )
        ]

    async def summarize_directory(self, arguments: dict[str, str]) -> list[PromptMessage]:
        path = self._resolver.resolve(arguments.get("path") or ".")
        try:
            tree = await asyncio.to_thread(build_tree, path, self._ignored, TREE_DEPTH)
        except OSError as exc:
            logger.info("Cannot read directory %s: %s", path, exc)
            tree = "(Could not read directory)"

        return [
            PromptMessage.user(
                "Please analyse the following project directory structure and provide:\n\n"
                "1. **Project purpose**: what does this project/folder do?\n"
                "2. **Architecture overview**: how is the code organised?\n"
                "3. **Key files/folders**: what does each important entry do?\n"
                "4. **Technology stack**: languages, frameworks, tools used.\n"
                "5. **Entry points**: where does execution start?\n\n"
                f"**Directory:** `{path}`\n\n"
                f"--- Directory Tree ---\n{tree}"
            )
        ]

    async def find_and_explain(self, arguments: dict[str, str]) -> list[PromptMessage]:
        filename = arguments["filename"]
        directory = self._resolver.resolve(arguments.get("directory") or ".")

        found = await asyncio.to_thread(find_first, directory, filename, self._ignored, FIND_DEPTH)
        content = "(File not found)"
        if found is not None:
            content = await asyncio.to_thread(_read_or_placeholder, found)

        return [
            PromptMessage.user(
                f"I found the file `{found or filename}`. "
                "Please explain what it does in plain English:\n\n"
                "- What is its purpose?\n"
                "- What are the most important parts?\n"
                "- Are there any non-obvious patterns or tricks?\n\n"
                f"--- File Content ---\n```\n{content}\n```"
            )
        ]


def build_tree(directory: Path, ignored: Iterable[str], max_depth: int, depth: int = 0) -> str:
    """Indented tree of *directory*, two spaces per level, down to *max_depth*."""
    if depth > max_depth:
        return ""
    skip = set(ignored)
    indent = "  " * depth
    lines: list[str] = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.name in skip:
            continue
        if entry.is_dir():
            lines.append(f"{indent}{entry.name}/")
            sub = build_tree(entry, skip, max_depth, depth + 1)
            if sub:
                lines.append(sub)
        else:
            lines.append(f"{indent}{entry.name}")
    return "\n".join(lines)


def find_first(
    directory: Path, filename: str, ignored: Iterable[str], max_depth: int, depth: int = 0
) -> Path | None:
    """Depth-first search for a file named exactly *filename*."""
    if depth > max_depth:
        return None
    skip = set(ignored)
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return None
    for entry in entries:
        if entry.is_file() and entry.name == filename:
            return entry
    for entry in entries:
        if entry.is_dir() and entry.name not in skip:
            found = find_first(entry, filename, skip, max_depth, depth + 1)
            if found is not None:
                return found
    return None


def _read_or_placeholder(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return "(Could not read file: it may not exist or is binary)"


def register_prompts(
    registry: CapabilityRegistry, resolver: PathResolver, search: SearchSettings
) -> ProjectPrompts:
    prompts = ProjectPrompts(resolver, search)

    registry.register_prompt(
        PromptSpec(
            name="review-file",
            description=(
                "Perform a detailed code review of a file: quality, structure, "
                "potential bugs and suggested improvements."
            ),
            generate=prompts.review_file,
            arguments=(
                PromptArgument(
                    name="path", description="Path to the file to review.", required=True
                ),
                PromptArgument(
                    name="focus",
                    description="'security', 'performance', 'readability', or 'all' (default).",
                ),
            ),
        )
    )
    registry.register_prompt(
        PromptSpec(
            name="summarize-directory",
            description=(
                "Summarise a project directory: what it does, how it is structured "
                "and what each major file or folder is for."
            ),
            generate=prompts.summarize_directory,
            arguments=(
                PromptArgument(
                    name="path", description="Path to the directory to summarise.", required=True
                ),
            ),
        )
    )
    registry.register_prompt(
        PromptSpec(
            name="find-and-explain",
            description="Find a file by name and explain what it does in plain English.",
            generate=prompts.find_and_explain,
            arguments=(
                PromptArgument(
                    name="filename",
                    description="The file name to look for (e.g. 'server.py').",
                    required=True,
                ),
                PromptArgument(
                    name="directory",
                    description="Directory to search. Defaults to the root.",
                ),
            ),
        )
    )
    return prompts
