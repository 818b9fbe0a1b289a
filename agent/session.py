"""
Session engine: drives one conversation with the model.

Owns the transcript, streams each model turn through a StreamReducer,
routes completed tool calls through the inspector, the approval gate and
the executor, and publishes everything that happens as an ordered stream
of events for exactly one consumer.

Typical use (inside a running event loop):

    session = Session(service, repo_dir)
    session.start(document)
    async for event in session.events():
        if isinstance(event, ToolRequest):
            session.answer(ToolAnswer(event.id, approved=True))
"""

import asyncio
import functools
import logging
import os
import threading
from typing import Any, AsyncIterator, Dict, List, Optional

from backend import LocalBackend
from tools import execute_tool, prepare_metadata, requires_approval, tool_schemas

from .approval import ApprovalGate
from .events import (
    AgentEvent, Done, Error, SessionCancelled, SessionOutcome, OutcomeState,
    ToolAnswer, ToolCallRequest, ToolRequest, ToolResultEvent, TurnLimitExceeded,
)
from .prompts import SYSTEM_PROMPT
from .stream import StreamReducer
from .transcript import Transcript

logger = logging.getLogger(__name__)

REJECTED_MESSAGE = "Tool execution was rejected by the user."
REJECTED_EVENT_TEXT = "Rejected by user"

DEFAULT_EVENT_BUFFER = 64
DEFAULT_MAX_TURNS = 200

_STREAM_END = object()
_CLOSED = object()


def _tool_result_block(tool_use_id: str, content: str, is_error: bool) -> Dict[str, Any]:
    block: Dict[str, Any] = {"type": "tool_result", "tool_use_id": tool_use_id, "content": content}
    if is_error:
        block["is_error"] = True
    return block


class Session:
    """One agentic conversation against one repository.

    `service` is any model transport exposing
    ``stream_message(messages, system_prompt, tools, max_tokens=None)`` that
    returns an iterator of raw Anthropic stream events (dicts). It is called
    from a worker thread.
    """

    def __init__(
        self,
        service: Any,
        working_directory: str = ".",
        *,
        system_prompt: str = SYSTEM_PROMPT,
        max_tokens: Optional[int] = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        event_buffer: int = DEFAULT_EVENT_BUFFER,
        command_timeout: Optional[float] = None,
    ):
        self.service = service
        self.working_directory = os.path.realpath(working_directory)
        self.backend = LocalBackend(self.working_directory)
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.max_turns = max_turns
        self.event_buffer = event_buffer
        self.command_timeout = command_timeout
        self.transcript = Transcript()
        self.outcome: Optional[SessionOutcome] = None

        self._gate = ApprovalGate()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional["asyncio.Queue[Any]"] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._cancel_requested = False
        self._stream_stop = threading.Event()
        self._task: Optional["asyncio.Task[SessionOutcome]"] = None
        self._closed = False
        self._closer: Optional["asyncio.Task[None]"] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, document: str) -> "asyncio.Task[SessionOutcome]":
        """Seed the transcript with the document and run the loop as a task on the current loop."""
        self._prepare(document)
        self._task = self._loop.create_task(self._run())
        return self._task

    async def run(self, document: str) -> SessionOutcome:
        """Run the session to completion in the current task. Events must be drained concurrently."""
        self._prepare(document)
        return await self._run()

    async def events(self) -> AsyncIterator[AgentEvent]:
        """Outward events in order. Ends after Done or Error."""
        if self._events is None:
            raise RuntimeError("session has not been started")
        while True:
            item = await self._events.get()
            if item is _CLOSED:
                return
            yield item

    def answer(self, answer: ToolAnswer) -> bool:
        """Deliver an approval decision. Thread-safe; False if no request with that id is pending."""
        return self._gate.submit(answer)

    def cancel(self) -> None:
        """Abort the session. Thread-safe; unblocks a pending stream read or approval wait."""
        self._cancel_requested = True
        self._stream_stop.set()
        loop, event = self._loop, self._cancel_event
        if loop is None or event is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
            return
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            logger.debug("cancel() after the session loop closed")

    @property
    def pending_approval(self) -> Optional[str]:
        """Id of the tool call awaiting an answer, if any."""
        return self._gate.pending_id

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _prepare(self, document: str) -> None:
        if self._loop is not None:
            raise RuntimeError("session already started")
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue(maxsize=self.event_buffer)
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()
        self.transcript.add_user_text(document)
        logger.info(f"Session started in {self.working_directory}")

    async def _run(self) -> SessionOutcome:
        try:
            try:
                outcome = await self._loop_turns()
            except SessionCancelled as e:
                logger.info("Session canceled")
                outcome = SessionOutcome.failed(e)
            except Exception as e:
                logger.error(f"Session failed: {e}")
                outcome = SessionOutcome.failed(e)
        except asyncio.CancelledError:
            # The task itself was cancelled from outside; still end the event stream.
            logger.info("Session task cancelled")
            self._stream_stop.set()
            self.outcome = SessionOutcome.failed(SessionCancelled("session task cancelled"))
            self._close_events(Error(cause=self.outcome.error))
            raise

        self.outcome = outcome
        try:
            if outcome.state is OutcomeState.DONE:
                logger.info(f"Session done: stop_reason={outcome.stop_reason}")
                await self._emit(Done(stop_reason=outcome.stop_reason or ""))
            else:
                await self._emit(Error(cause=outcome.error))
            await self._events.put(_CLOSED)
            self._closed = True
        finally:
            if not self._closed:
                self._close_events()
        return outcome

    async def _loop_turns(self) -> SessionOutcome:
        turns = 0
        while True:
            if self._cancel_event.is_set():
                raise SessionCancelled("session canceled")
            if turns >= self.max_turns:
                raise TurnLimitExceeded(f"reached maximum turns ({self.max_turns})")
            turns += 1
            outcome = await self._turn()
            if outcome.terminal:
                return outcome

    async def _turn(self) -> SessionOutcome:
        reducer = StreamReducer()
        await self._stream_turn(reducer)
        logger.info(
            f"Turn complete: stop_reason={reducer.stop_reason} blocks={len(reducer.content_blocks)} "
            f"tool_calls={len(reducer.tool_calls)} tokens={reducer.input_tokens}/{reducer.output_tokens}"
        )

        if reducer.content_blocks:
            self.transcript.add_assistant(reducer.content_blocks)

        # No tool calls ends the session whatever the stop reason, including a
        # stray "tool_use" with nothing to run.
        if not reducer.tool_calls:
            return SessionOutcome.done(reducer.stop_reason)

        results: List[Dict[str, Any]] = []
        for call in reducer.tool_calls:
            results.append(await self._process_call(call))
        self.transcript.add_tool_results(results)
        return SessionOutcome.continuing()

    async def _stream_turn(self, reducer: StreamReducer) -> None:
        """Run the blocking transport on a worker thread and fold its events on the loop."""
        loop = self._loop
        chunks: "asyncio.Queue[Any]" = asyncio.Queue()
        stop = self._stream_stop
        messages = self.transcript.messages

        def _post(item: Any) -> None:
            try:
                loop.call_soon_threadsafe(chunks.put_nowait, item)
            except RuntimeError:
                stop.set()

        def _stream_producer() -> None:
            stream = None
            try:
                stream = self.service.stream_message(
                    messages=messages,
                    system_prompt=self.system_prompt,
                    tools=tool_schemas(),
                    max_tokens=self.max_tokens,
                )
                for chunk in stream:
                    if stop.is_set():
                        break
                    _post(chunk)
                _post(_STREAM_END)
            except Exception as exc:
                _post(exc)
            finally:
                close = getattr(stream, "close", None)
                if callable(close):
                    try:
                        close()
                    except Exception as exc:
                        logger.debug(f"closing model stream: {exc}")

        producer = threading.Thread(target=_stream_producer, daemon=True, name="model-stream")
        producer.start()
        while True:
            item = await self._until_cancelled(chunks.get())
            if item is _STREAM_END:
                break
            if isinstance(item, BaseException):
                raise item
            for event in reducer.feed(item):
                await self._emit(event)

    async def _process_call(self, call: ToolCallRequest) -> Dict[str, Any]:
        if self._cancel_event.is_set():
            raise SessionCancelled("session canceled")
        call.metadata = prepare_metadata(self.working_directory, call.name, call.raw_input)

        if requires_approval(call.name):
            future = self._gate.open(call.id)
            try:
                await self._emit(ToolRequest(
                    id=call.id, name=call.name, input=call.input,
                    metadata=call.metadata, raw_input=call.raw_input,
                ))
                approved = await self._until_cancelled(future)
            finally:
                self._gate.close()
            if not approved:
                logger.info(f"Tool call rejected: {call.name} ({call.id})")
                await self._emit(ToolResultEvent(id=call.id, content=REJECTED_EVENT_TEXT, is_error=True))
                return _tool_result_block(call.id, REJECTED_MESSAGE, True)

        logger.debug(f"Executing {call.name} ({call.id})")
        # A tool already running finishes in its thread, but its result is dropped on cancel.
        result = await self._until_cancelled(self._loop.run_in_executor(
            None,
            functools.partial(
                execute_tool, call.name, call.raw_input, self.working_directory, self.backend,
                timeout=self.command_timeout,
            ),
        ))
        is_error = not result.success
        content = result.content
        await self._emit(ToolResultEvent(id=call.id, content=content, is_error=is_error))
        return _tool_result_block(call.id, content, is_error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _emit(self, event: AgentEvent) -> None:
        await self._events.put(event)

    def _close_events(self, final: Optional[AgentEvent] = None) -> None:
        """End the event stream without waiting; a full queue gets the rest from a follow-up task."""
        self._closed = True
        pending: List[Any] = ([final] if final is not None else []) + [_CLOSED]
        while pending:
            try:
                self._events.put_nowait(pending[0])
            except asyncio.QueueFull:
                break
            pending.pop(0)
        if pending:
            async def _drain() -> None:
                for item in pending:
                    await self._events.put(item)
            self._closer = self._loop.create_task(_drain())

    async def _until_cancelled(self, awaitable: Any) -> Any:
        """Await awaitable unless the session is canceled first."""
        task = asyncio.ensure_future(awaitable)
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
        if self._cancel_event.is_set():
            task.cancel()
            raise SessionCancelled("session canceled")
        return task.result()
