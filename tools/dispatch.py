"""Tool execution dispatch and approval logic."""

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from backend import LocalBackend
from tools._common import ToolInputError, ToolKind, ToolResult
from tools.schemas import TOOL_KINDS, TOOLS_BY_NAME, requires_approval
from tools.file_ops import read_file, write_file, edit_file
from tools.search_ops import list_files, search_files
from tools.shell_ops import run_command

logger = logging.getLogger(__name__)

ToolInput = Union[str, bytes, Mapping[str, Any], None]

TOOL_IMPLEMENTATIONS: Dict[ToolKind, Callable[..., ToolResult]] = {
    ToolKind.READ: read_file,
    ToolKind.WRITE: write_file,
    ToolKind.EDIT: edit_file,
    ToolKind.SHELL: run_command,
    ToolKind.LIST: list_files,
    ToolKind.SEARCH: search_files,
}

_missing = set(ToolKind) - set(TOOL_IMPLEMENTATIONS)
if _missing:
    raise RuntimeError(f"no implementation for tool kinds: {sorted(k.value for k in _missing)}")


def parse_tool_input(raw: ToolInput) -> Dict[str, str]:
    """Decode a tool input payload into a key -> string map.

    An empty payload is an empty object. Anything that is not a JSON object
    of string values raises ToolInputError.
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolInputError(f"invalid tool input: {e}") from None
    else:
        decoded = raw
    if not isinstance(decoded, Mapping):
        raise ToolInputError(f"invalid tool input: expected a JSON object, got {type(decoded).__name__}")
    params: Dict[str, str] = {}
    for key, value in decoded.items():
        if not isinstance(value, str):
            raise ToolInputError(f"invalid tool input: parameter {key!r} must be a string")
        params[key] = value
    return params


def execute_tool(
    name: str,
    inputs: ToolInput,
    working_directory: str = ".",
    backend: Optional[LocalBackend] = None,
    *,
    timeout: Optional[float] = None,
) -> ToolResult:
    """Execute a tool by name. Never raises: every failure comes back as an unsuccessful ToolResult."""
    kind = TOOL_KINDS.get(name)
    if kind is None:
        return ToolResult(success=False, output="", error=f"unknown tool: {name}")
    try:
        params = parse_tool_input(inputs)
    except ToolInputError as e:
        return ToolResult(success=False, output="", error=f"{name}: {e}")

    definition = TOOLS_BY_NAME[name]
    for required in definition.required:
        if required not in params:
            return ToolResult(success=False, output="", error=f"{name}: {required} is required")

    kwargs: Dict[str, Any] = {k: v for k, v in params.items() if k in definition.properties}
    kwargs["backend"] = backend or LocalBackend(working_directory)
    if kind is ToolKind.SHELL:
        kwargs["timeout"] = timeout
    try:
        return TOOL_IMPLEMENTATIONS[kind](**kwargs)
    except Exception as e:
        logger.exception(f"Tool execution error: {name}")
        return ToolResult(success=False, output="", error=f"Tool error ({name}): {e}")


def needs_approval(tool_name: str) -> bool:
    """Check if a tool requires user approval before it runs."""
    return requires_approval(tool_name)
