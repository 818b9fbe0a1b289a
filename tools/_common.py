"""Shared types for the tools package."""

import enum
from dataclasses import dataclass
from typing import Optional


class ToolKind(enum.Enum):
    """Classification of a tool for display and approval routing."""
    READ = "read"
    WRITE = "write"
    EDIT = "edit"
    SHELL = "shell"
    LIST = "list"
    SEARCH = "search"


class ToolInputError(ValueError):
    """Tool parameters are missing, mistyped or not valid JSON."""


@dataclass
class ToolResult:
    """Result from executing a tool"""
    success: bool
    output: str
    error: Optional[str] = None

    @property
    def content(self) -> str:
        """Text fed back to the model: the error message on failure, else the output."""
        if not self.success:
            return self.error or self.output
        return self.output


@dataclass
class ToolMetadata:
    """Pre-computed display information for a tool call, captured before it runs."""
    kind: ToolKind
    path: Optional[str] = None
    command: Optional[str] = None
    diff: Optional[str] = None
    content: Optional[str] = None
