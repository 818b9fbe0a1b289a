"""
End-to-end tests for the session engine with a scripted model transport.
"""

import asyncio
import json
import threading

from agent import (
    Done, Error, OutcomeState, Session, SessionCancelled, StreamProtocolError,
    TextDelta, ToolAnswer, ToolRequest, ToolResultEvent, TurnLimitExceeded,
    REJECTED_MESSAGE, REJECTED_EVENT_TEXT,
)
from tools import ToolKind
from test_stream import text_turn, tool_turn


class ScriptedService:
    """Replays one pre-recorded event list per model call and records what it was sent."""

    def __init__(self, *turns, repeat_last=False):
        self.turns = list(turns)
        self.repeat_last = repeat_last
        self.calls = []

    def stream_message(self, messages, system_prompt=None, tools=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system_prompt, "tools": tools})
        if self.repeat_last and len(self.turns) == 1:
            turn = self.turns[0]
        else:
            turn = self.turns.pop(0)
        for event in turn:
            if isinstance(event, Exception):
                raise event
            yield event


def run_session(session, document, on_request=None):
    """Drive a session to the end and collect every event it publishes."""

    async def _drive():
        task = session.start(document)
        events = []
        async for event in session.events():
            events.append(event)
            if isinstance(event, ToolRequest) and on_request is not None:
                on_request(session, event)
        outcome = await task
        return events, outcome

    return asyncio.run(_drive())


def approve(session, event):
    assert session.answer(ToolAnswer(id=event.id, approved=True))


def reject(session, event):
    assert session.answer(ToolAnswer(id=event.id, approved=False))


def write_call(call_id="toolu_w", path="out.txt", content="hello"):
    return tool_turn(call_id, "write_file", json.dumps({"path": path, "content": content}))


# ============================================================
# Plain conversations
# ============================================================

def test_hello_world(tmp_path):
    service = ScriptedService(text_turn("Hello", ", world"))
    session = Session(service, str(tmp_path))
    events, outcome = run_session(session, "Say hello")

    assert events == [TextDelta("Hello"), TextDelta(", world"), Done(stop_reason="end_turn")]
    assert outcome.state is OutcomeState.DONE
    assert outcome.stop_reason == "end_turn"

    messages = session.transcript.messages
    assert messages == [
        {"role": "user", "content": [{"type": "text", "text": "Say hello"}]},
        {"role": "assistant", "content": [{"type": "text", "text": "Hello, world"}]},
    ]
    assert len(service.calls) == 1
    assert service.calls[0]["system"] == session.system_prompt
    assert [t["name"] for t in service.calls[0]["tools"]] == [
        "read_file", "write_file", "edit_file", "bash", "list_files", "search_files",
    ]


def test_read_only_tool_runs_without_approval(tmp_path):
    (tmp_path / "a.txt").write_text("contents")
    service = ScriptedService(
        tool_turn("toolu_r", "read_file", '{"path": "a.txt"}'),
        text_turn("Read it."),
    )
    session = Session(service, str(tmp_path))
    events, outcome = run_session(session, "Read a.txt")

    assert not any(isinstance(e, ToolRequest) for e in events)
    assert ToolResultEvent(id="toolu_r", content="contents", is_error=False) in events
    assert outcome.state is OutcomeState.DONE

    tool_results = service.calls[1]["messages"][-1]
    assert tool_results == {
        "role": "user",
        "content": [{"type": "tool_result", "tool_use_id": "toolu_r", "content": "contents"}],
    }


def test_failed_tool_is_reported_as_error_result(tmp_path):
    service = ScriptedService(
        tool_turn("toolu_r", "read_file", '{"path": "missing.txt"}'),
        text_turn("It is missing."),
    )
    events, outcome = run_session(Session(service, str(tmp_path)), "Read it")

    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.is_error
    assert result.content.startswith("reading missing.txt:")
    block = service.calls[1]["messages"][-1]["content"][0]
    assert block["is_error"] is True
    assert outcome.state is OutcomeState.DONE


def test_multiple_tool_calls_answered_in_one_message(tmp_path):
    (tmp_path / "a.txt").write_text("A")
    (tmp_path / "b.txt").write_text("B")
    two_calls = [
        {"type": "content_block_start", "index": 0,
         "content_block": {"type": "tool_use", "id": "t1", "name": "read_file", "input": {}}},
        {"type": "content_block_delta", "index": 0,
         "delta": {"type": "input_json_delta", "partial_json": '{"path": "a.txt"}'}},
        {"type": "content_block_stop", "index": 0},
        {"type": "content_block_start", "index": 1,
         "content_block": {"type": "tool_use", "id": "t2", "name": "read_file", "input": {}}},
        {"type": "content_block_delta", "index": 1,
         "delta": {"type": "input_json_delta", "partial_json": '{"path": "b.txt"}'}},
        {"type": "content_block_stop", "index": 1},
        {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {}},
    ]
    service = ScriptedService(two_calls, text_turn("Both read."))
    events, _ = run_session(Session(service, str(tmp_path)), "Read both")

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert [(r.id, r.content) for r in results] == [("t1", "A"), ("t2", "B")]
    last = service.calls[1]["messages"][-1]
    assert [b["tool_use_id"] for b in last["content"]] == ["t1", "t2"]


# ============================================================
# Approval
# ============================================================

def test_rejected_write_leaves_disk_untouched(tmp_path):
    service = ScriptedService(write_call(), text_turn("Okay, not writing."))
    session = Session(service, str(tmp_path))
    events, outcome = run_session(session, "Write a file", on_request=reject)

    assert not (tmp_path / "out.txt").exists()
    request = next(e for e in events if isinstance(e, ToolRequest))
    assert request.name == "write_file"
    assert request.input == {"path": "out.txt", "content": "hello"}
    assert request.metadata.kind is ToolKind.WRITE
    assert request.metadata.diff == "--- a/out.txt\n+++ b/out.txt\n-\n+hello\n"

    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result == ToolResultEvent(id="toolu_w", content=REJECTED_EVENT_TEXT, is_error=True)
    assert service.calls[1]["messages"][-1]["content"] == [
        {"type": "tool_result", "tool_use_id": "toolu_w", "content": REJECTED_MESSAGE, "is_error": True},
    ]
    assert outcome.state is OutcomeState.DONE


def test_approved_write_creates_file(tmp_path):
    service = ScriptedService(write_call(), text_turn("Written."))
    events, outcome = run_session(Session(service, str(tmp_path)), "Write a file", on_request=approve)

    assert (tmp_path / "out.txt").read_text() == "hello"
    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result == ToolResultEvent(id="toolu_w", content="Wrote 5 bytes to out.txt", is_error=False)
    assert isinstance(events[-1], Done)
    assert outcome.state is OutcomeState.DONE


def test_answer_from_another_thread(tmp_path):
    service = ScriptedService(write_call(), text_turn("Written."))

    def answer_later(session, event):
        threading.Thread(target=approve, args=(session, event)).start()

    run_session(Session(service, str(tmp_path)), "Write", on_request=answer_later)
    assert (tmp_path / "out.txt").read_text() == "hello"


def test_stale_and_mismatched_answers_are_refused(tmp_path):
    service = ScriptedService(write_call(), text_turn("Written."))
    session = Session(service, str(tmp_path))
    seen = []

    def on_request(session, event):
        assert session.pending_approval == event.id
        assert session.answer(ToolAnswer(id="not-pending", approved=True)) is False
        approve(session, event)
        assert session.answer(ToolAnswer(id=event.id, approved=False)) is False
        seen.append(event.id)

    _, outcome = run_session(session, "Write", on_request=on_request)
    assert seen == ["toolu_w"]
    assert (tmp_path / "out.txt").read_text() == "hello"
    assert session.pending_approval is None
    assert session.answer(ToolAnswer(id="toolu_w", approved=True)) is False
    assert outcome.state is OutcomeState.DONE


def test_cancel_while_waiting_for_approval(tmp_path):
    service = ScriptedService(write_call(), text_turn("never reached"))

    def cancel(session, event):
        session.cancel()

    session = Session(service, str(tmp_path))
    events, outcome = run_session(session, "Write", on_request=cancel)

    assert [type(e) for e in events] == [ToolRequest, Error]
    assert isinstance(events[-1].cause, SessionCancelled)
    assert events[-1].cancelled
    assert not (tmp_path / "out.txt").exists()
    assert outcome.state is OutcomeState.ERROR
    assert len(service.calls) == 1
    assert session.pending_approval is None


def test_cancel_before_start(tmp_path):
    service = ScriptedService(text_turn("unused"))
    session = Session(service, str(tmp_path))
    session.cancel()
    events, outcome = run_session(session, "anything")

    assert len(events) == 1
    assert isinstance(events[0], Error) and events[0].cancelled
    assert service.calls == []


# ============================================================
# Failures
# ============================================================

def test_transport_error_ends_session(tmp_path):
    boom = RuntimeError("connection reset")
    service = ScriptedService([
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "par"}},
        boom,
    ])
    events, outcome = run_session(Session(service, str(tmp_path)), "go")

    assert events[0] == TextDelta("par")
    assert isinstance(events[-1], Error)
    assert events[-1].cause is boom
    assert outcome.error is boom
    assert sum(isinstance(e, (Done, Error)) for e in events) == 1


def test_stream_error_event_ends_session(tmp_path):
    service = ScriptedService([
        {"type": "message_start", "message": {"usage": {}}},
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
    ])
    events, outcome = run_session(Session(service, str(tmp_path)), "go")

    assert len(events) == 1
    assert isinstance(events[0].cause, StreamProtocolError)
    assert outcome.state is OutcomeState.ERROR


def test_turn_limit(tmp_path):
    service = ScriptedService(tool_turn("t", "list_files", '{"path": "."}'), repeat_last=True)
    session = Session(service, str(tmp_path), max_turns=2)
    events, outcome = run_session(session, "loop forever")

    assert len(service.calls) == 2
    assert isinstance(events[-1], Error)
    assert isinstance(events[-1].cause, TurnLimitExceeded)
    assert outcome.state is OutcomeState.ERROR


class BlockingService:
    """Streams one text delta, then hangs until released."""

    def __init__(self):
        self.release = threading.Event()

    def stream_message(self, messages, system_prompt=None, tools=None, max_tokens=None):
        yield {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}
        yield {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "thinking..."}}
        self.release.wait(10)


def test_cancel_while_waiting_on_stream(tmp_path):
    service = BlockingService()
    session = Session(service, str(tmp_path))

    async def _drive():
        task = session.start("go")
        events = []
        async for event in session.events():
            events.append(event)
            if isinstance(event, TextDelta):
                session.cancel()
        return events, await asyncio.wait_for(task, timeout=5)

    try:
        events, outcome = asyncio.run(_drive())
    finally:
        service.release.set()

    assert [type(e) for e in events] == [TextDelta, Error]
    assert events[-1].cancelled
    assert outcome.state is OutcomeState.ERROR


def test_cancel_skips_remaining_tool_calls(tmp_path):
    (tmp_path / "a.txt").write_text("A")
    (tmp_path / "b.txt").write_text("B")
    two_calls = [
        {"type": "content_block_start", "index": 0,
         "content_block": {"type": "tool_use", "id": "t1", "name": "read_file", "input": {}}},
        {"type": "content_block_delta", "index": 0,
         "delta": {"type": "input_json_delta", "partial_json": '{"path": "a.txt"}'}},
        {"type": "content_block_stop", "index": 0},
        {"type": "content_block_start", "index": 1,
         "content_block": {"type": "tool_use", "id": "t2", "name": "read_file", "input": {}}},
        {"type": "content_block_delta", "index": 1,
         "delta": {"type": "input_json_delta", "partial_json": '{"path": "b.txt"}'}},
        {"type": "content_block_stop", "index": 1},
        {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {}},
    ]
    service = ScriptedService(two_calls, text_turn("never reached"))
    session = Session(service, str(tmp_path))

    async def _drive():
        task = session.start("read both")
        events = []
        async for event in session.events():
            events.append(event)
            if isinstance(event, ToolResultEvent):
                session.cancel()
        return events, await task

    events, outcome = asyncio.run(_drive())
    assert [type(e) for e in events] == [ToolResultEvent, Error]
    assert events[0].id == "t1"
    assert events[-1].cancelled
    assert len(service.calls) == 1


def test_tool_request_carries_raw_input(tmp_path):
    raw = '{"path": "out.txt", "content": '
    service = ScriptedService(tool_turn("toolu_bad", "write_file", raw), text_turn("Sorry."))
    events, outcome = run_session(Session(service, str(tmp_path)), "Write", on_request=approve)

    request = next(e for e in events if isinstance(e, ToolRequest))
    assert request.input == {}
    assert request.raw_input == raw
    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.is_error
    assert result.content.startswith("write_file: invalid tool input")
    assert not (tmp_path / "out.txt").exists()
    assert outcome.state is OutcomeState.DONE


def test_run_in_current_task(tmp_path):
    service = ScriptedService(text_turn("Hi"))
    session = Session(service, str(tmp_path))

    async def _drive():
        outcome_task = asyncio.ensure_future(session.run("hello"))
        await asyncio.sleep(0)
        events = [e async for e in session.events()]
        return events, await outcome_task

    events, outcome = asyncio.run(_drive())
    assert events == [TextDelta("Hi"), Done(stop_reason="end_turn")]
    assert outcome.state is OutcomeState.DONE
    assert session.outcome is outcome


def test_external_task_cancel_closes_event_stream(tmp_path):
    service = ScriptedService(write_call(), text_turn("never reached"))
    session = Session(service, str(tmp_path))

    async def _drive():
        task = session.start("Write")
        events = []
        async for event in session.events():
            events.append(event)
            if isinstance(event, ToolRequest):
                task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return events, True
        return events, False

    events, task_cancelled = asyncio.run(_drive())
    assert task_cancelled
    assert [type(e) for e in events] == [ToolRequest, Error]
    assert events[-1].cancelled
    assert session.outcome.state is OutcomeState.ERROR
    assert session.pending_approval is None
    assert not (tmp_path / "out.txt").exists()
