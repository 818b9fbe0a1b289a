"""Append-only conversation history sent to the model on every turn."""

import copy
from typing import Any, Dict, Iterator, List


class Transcript:
    """Ordered role-tagged messages. Entries can be appended, never edited or removed."""

    def __init__(self) -> None:
        self._messages: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.messages)

    def append(self, role: str, content: List[Dict[str, Any]]) -> None:
        if role not in ("user", "assistant"):
            raise ValueError(f"unknown role: {role!r}")
        self._messages.append({"role": role, "content": copy.deepcopy(content)})

    def add_user_text(self, text: str) -> None:
        self.append("user", [{"type": "text", "text": text}])

    def add_assistant(self, blocks: List[Dict[str, Any]]) -> None:
        self.append("assistant", blocks)

    def add_tool_results(self, blocks: List[Dict[str, Any]]) -> None:
        """Tool results travel back to the model in a user-role message."""
        self.append("user", blocks)

    @property
    def messages(self) -> List[Dict[str, Any]]:
        """Deep copy of the history, safe to hand to a transport."""
        return copy.deepcopy(self._messages)
