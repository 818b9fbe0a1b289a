"""
System prompt for the session engine.
"""

from tools import TOOL_DEFINITIONS


# Tool names for system prompt so the agent always knows what it can call
AVAILABLE_TOOL_NAMES = ", ".join(t.name for t in TOOL_DEFINITIONS)

SYSTEM_PROMPT = (
    "You are a software engineering assistant. You have access to tools for reading, writing, "
    "and editing files, running bash commands, listing files, and searching file contents. "
    "Work within the repository directory. Be precise and make minimal changes."
)
