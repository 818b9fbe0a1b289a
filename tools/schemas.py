"""Tool schema definitions (Anthropic Messages API) and the static tool tables."""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from tools._common import ToolKind


READ_FILE = "read_file"
WRITE_FILE = "write_file"
EDIT_FILE = "edit_file"
BASH = "bash"
LIST_FILES = "list_files"
SEARCH_FILES = "search_files"


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable description of one tool offered to the model."""
    name: str
    description: str
    properties: Dict[str, Dict[str, Any]]
    required: Tuple[str, ...] = ()

    def to_api(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": {k: dict(v) for k, v in self.properties.items()},
                "required": list(self.required),
            },
        }


TOOL_DEFINITIONS: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name=READ_FILE,
        description="Read the contents of a file at the given path.",
        properties={
            "path": {"type": "string", "description": "The file path to read, relative to the repository root."},
        },
        required=("path",),
    ),
    ToolDefinition(
        name=WRITE_FILE,
        description="Write content to a file, creating it if it doesn't exist or overwriting if it does.",
        properties={
            "path": {"type": "string", "description": "The file path to write to, relative to the repository root."},
            "content": {"type": "string", "description": "The full content to write to the file."},
        },
        required=("path", "content"),
    ),
    ToolDefinition(
        name=EDIT_FILE,
        description="Replace a specific text occurrence in a file with new text.",
        properties={
            "path": {"type": "string", "description": "The file path to edit, relative to the repository root."},
            "old_text": {"type": "string", "description": "The exact text to find and replace. Must match exactly."},
            "new_text": {"type": "string", "description": "The replacement text."},
        },
        required=("path", "old_text", "new_text"),
    ),
    ToolDefinition(
        name=BASH,
        description="Execute a bash command and return the output.",
        properties={
            "command": {"type": "string", "description": "The bash command to execute."},
        },
        required=("command",),
    ),
    ToolDefinition(
        name=LIST_FILES,
        description="List files and directories at the given path.",
        properties={
            "path": {"type": "string", "description": "The directory path to list, relative to the repository root."},
            "pattern": {"type": "string", "description": "Optional glob pattern to filter results."},
        },
        required=("path",),
    ),
    ToolDefinition(
        name=SEARCH_FILES,
        description="Search for a regex pattern in files.",
        properties={
            "pattern": {"type": "string", "description": "The regex pattern to search for."},
            "path": {"type": "string", "description": "Optional directory to search in, relative to the repository root."},
            "glob": {"type": "string", "description": "Optional glob pattern to filter which files to search."},
        },
        required=("pattern",),
    ),
)

TOOLS_BY_NAME: Dict[str, ToolDefinition] = {d.name: d for d in TOOL_DEFINITIONS}

TOOL_KINDS: Dict[str, ToolKind] = {
    READ_FILE: ToolKind.READ,
    WRITE_FILE: ToolKind.WRITE,
    EDIT_FILE: ToolKind.EDIT,
    BASH: ToolKind.SHELL,
    LIST_FILES: ToolKind.LIST,
    SEARCH_FILES: ToolKind.SEARCH,
}

# Mutating or process-spawning tools; everything else runs without asking.
TOOLS_REQUIRING_APPROVAL = frozenset({WRITE_FILE, EDIT_FILE, BASH})


def definitions() -> List[ToolDefinition]:
    return list(TOOL_DEFINITIONS)


def tool_schemas() -> List[Dict[str, Any]]:
    """Tool list in the shape the Messages API expects."""
    return [d.to_api() for d in TOOL_DEFINITIONS]


def requires_approval(name: str) -> bool:
    return name in TOOLS_REQUIRING_APPROVAL


def kind_of(name: str) -> ToolKind:
    """Display classification. Unknown names fall back to READ; execution rejects them separately."""
    return TOOL_KINDS.get(name, ToolKind.READ)
