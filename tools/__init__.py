"""
Tool catalog, sandboxed executor and pre-execution inspector for the agent.
Each tool has an Anthropic-compatible schema and an implementation function.
All filesystem and process access goes through backend.LocalBackend, which
confines paths to the repository root.
"""

from tools._common import ToolInputError, ToolKind, ToolMetadata, ToolResult  # noqa: F401
from tools.schemas import (  # noqa: F401
    TOOL_DEFINITIONS,
    TOOL_KINDS,
    TOOLS_BY_NAME,
    TOOLS_REQUIRING_APPROVAL,
    ToolDefinition,
    definitions,
    kind_of,
    requires_approval,
    tool_schemas,
)
from tools.file_ops import read_file, write_file, edit_file  # noqa: F401
from tools.search_ops import list_files, search_files, MAX_SEARCH_RESULTS  # noqa: F401
from tools.shell_ops import run_command  # noqa: F401
from tools.diff import compute_unified_diff  # noqa: F401
from tools.dispatch import execute_tool, needs_approval, parse_tool_input  # noqa: F401
from tools.metadata import prepare_metadata  # noqa: F401
