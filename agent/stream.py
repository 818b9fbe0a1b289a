"""
Incremental reducer for Anthropic message stream events.

Folds message_start / content_block_start / content_block_delta /
content_block_stop / message_delta / message_stop events (as plain dicts)
into completed content blocks, completed tool calls and the stop reason.
Text and thinking deltas are handed back immediately so the caller can
forward them while the stream is still open.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .events import AgentEvent, StreamProtocolError, TextDelta, ThinkingDelta, ToolCallRequest

logger = logging.getLogger(__name__)

BLOCK_TEXT = "text"
BLOCK_TOOL_USE = "tool_use"
BLOCK_THINKING = "thinking"


def decode_tool_input(raw: str) -> Dict[str, Any]:
    """Decode accumulated input JSON for the transcript; unparsable input becomes {}."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Unparsable tool input ({e}): {raw[:200]!r}")
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Tool input is not an object: {raw[:200]!r}")
        return {}
    return value


class StreamReducer:
    """Per-call stream state. Create one per model request and discard it afterwards."""

    def __init__(self) -> None:
        self.content_blocks: List[Dict[str, Any]] = []
        self.tool_calls: List[ToolCallRequest] = []
        self.stop_reason: Optional[str] = None
        self.input_tokens = 0
        self.output_tokens = 0
        self._block_type: Optional[str] = None
        self._text_parts: List[str] = []
        self._tool: Optional[ToolCallRequest] = None
        self._json_parts: List[str] = []

    @property
    def current_block_type(self) -> Optional[str]:
        """Type of the open content block, None when idle."""
        return self._block_type

    def feed(self, event: Dict[str, Any]) -> List[AgentEvent]:
        """Apply one stream event; returns the outward events it produced, in order."""
        event_type = event.get("type", "")
        if event_type == "content_block_start":
            return self._block_start(event.get("content_block") or {})
        if event_type == "content_block_delta":
            return self._block_delta(event.get("delta") or {})
        if event_type == "content_block_stop":
            self._block_stop()
        elif event_type == "message_start":
            usage = (event.get("message") or {}).get("usage") or {}
            self.input_tokens += usage.get("input_tokens", 0) or 0
        elif event_type == "message_delta":
            # May arrive before the final block stop.
            self.stop_reason = (event.get("delta") or {}).get("stop_reason") or self.stop_reason
            usage = event.get("usage") or {}
            self.output_tokens += usage.get("output_tokens", 0) or 0
        elif event_type == "error":
            err = event.get("error") or {}
            raise StreamProtocolError(f"{err.get('type', 'error')}: {err.get('message', 'stream error')}")
        return []

    def _block_start(self, block: Dict[str, Any]) -> List[AgentEvent]:
        block_type = block.get("type", "")
        self._block_type = block_type
        if block_type == BLOCK_TEXT:
            self._text_parts = []
            initial = block.get("text") or ""
            if initial:
                self._text_parts.append(initial)
                return [TextDelta(text=initial)]
        elif block_type == BLOCK_TOOL_USE:
            self._tool = ToolCallRequest(id=block.get("id", ""), name=block.get("name", ""))
            self._json_parts = []
        return []

    def _block_delta(self, delta: Dict[str, Any]) -> List[AgentEvent]:
        delta_type = delta.get("type", "")
        if self._block_type == BLOCK_TEXT and delta_type == "text_delta":
            text = delta.get("text", "")
            self._text_parts.append(text)
            return [TextDelta(text=text)]
        if self._block_type == BLOCK_TOOL_USE and delta_type == "input_json_delta" and self._tool is not None:
            self._json_parts.append(delta.get("partial_json", ""))
        elif self._block_type == BLOCK_THINKING and delta_type == "thinking_delta":
            return [ThinkingDelta(text=delta.get("thinking", ""))]
        return []

    def _block_stop(self) -> None:
        if self._block_type == BLOCK_TEXT:
            text = "".join(self._text_parts)
            if text:
                self.content_blocks.append({"type": "text", "text": text})
            self._text_parts = []
        elif self._block_type == BLOCK_TOOL_USE and self._tool is not None:
            tool = self._tool
            tool.raw_input = "".join(self._json_parts)
            tool.input = decode_tool_input(tool.raw_input)
            self.tool_calls.append(tool)
            self.content_blocks.append({
                "type": "tool_use",
                "id": tool.id,
                "name": tool.name,
                "input": tool.input,
            })
            self._tool = None
            self._json_parts = []
        self._block_type = None
