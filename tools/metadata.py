"""Pre-execution metadata for approval prompts.

Computed from the current on-disk state without touching anything. Expected
failures (bad JSON, missing file, path outside the repository) only make the
metadata poorer; this module never raises for them.
"""

import logging
from typing import Dict

from backend import LocalBackend, PathEscapeError
from tools._common import ToolInputError, ToolKind, ToolMetadata
from tools.diff import compute_unified_diff
from tools.dispatch import ToolInput, parse_tool_input
from tools.schemas import kind_of

logger = logging.getLogger(__name__)


def _current_content(backend: LocalBackend, path: str) -> str:
    """Current file content; a missing or unreadable file counts as empty."""
    try:
        return backend.read_file(path)
    except OSError:
        return ""


def prepare_metadata(working_directory: str, name: str, inputs: ToolInput) -> ToolMetadata:
    kind = kind_of(name)
    meta = ToolMetadata(kind=kind)
    try:
        params: Dict[str, str] = parse_tool_input(inputs)
    except ToolInputError as e:
        logger.debug(f"metadata for {name}: {e}")
        return meta

    path = params.get("path", "")
    if kind is ToolKind.SHELL:
        meta.command = params.get("command", "")
        return meta

    meta.path = path
    if kind not in (ToolKind.WRITE, ToolKind.EDIT):
        return meta

    backend = LocalBackend(working_directory)
    try:
        backend.resolve_path(path)
    except PathEscapeError:
        if kind is ToolKind.WRITE:
            meta.content = params.get("content", "")
        return meta

    old = _current_content(backend, path)
    if kind is ToolKind.WRITE:
        meta.content = params.get("content", "")
        meta.diff = compute_unified_diff(path, old, meta.content)
    else:
        new = old
        if "old_text" in params:
            new = old.replace(params["old_text"], params.get("new_text", ""), 1)
        meta.diff = compute_unified_diff(path, old, new)
    return meta
