"""The per-mission turn loop: one bounded conversation with a tool-calling model."""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from context_compactor import ContextCompactor
from exceptions import LLMStatusError, ProtocolError
from ground_control import NOTE_NAME, GroundControl
from llm import ChatProvider, ChatResponse
from message_types import (
    AssistantTextMessage,
    AssistantToolCallsMessage,
    Conversation,
    SystemMessage,
    ToolCall,
    ToolResultMessage,
)
from mission_types import FILE_EVENT_KEY, LoopState, Step, StepResult, TurnLoopResult
from protocol_validator import ProtocolValidator
from redaction import redact_password_in_text
from token_budget import TokenBudget, estimate_tokens
from tool_dispatcher import ToolDispatcher
from turn_intent import summarize_turn_intent, truncate_middle

# Tools whose side effects change the page enough to warrant a fresh DOM.
DOM_REFRESH_AFTER = frozenset({"click", "click_text", "expand_menu"})
# A refresh right after these would duplicate what the model just saw.
DOM_REFRESH_SKIP_AFTER = frozenset({"get_dom", "check_text"})

EVENT_PREVIEW_CHARS = 200

SleepFn = Callable[[float], Awaitable[Any]]
StepSink = Callable[[Step], Any]


def _is_rate_limited(error: BaseException) -> bool:
    return isinstance(error, LLMStatusError) and error.status_code == 429


def _parse_file_event(text: str) -> Optional[Dict[str, Any]]:
    if not text.startswith("{"):
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict) and payload.get(FILE_EVENT_KEY):
        return payload
    return None


@dataclass
class _TurnOutcome:
    result: StepResult
    events: List[str] = field(default_factory=list)
    tokens_used: int = 0
    summary: str = ""
    file_events: List[Dict[str, Any]] = field(default_factory=list)
    screenshot_path: Optional[str] = None
    final_message: Optional[str] = None


class TurnLoop:
    """Drives one mission conversation until a verdict, an abort, or the turn budget runs out."""

    def __init__(
        self,
        provider: ChatProvider,
        dispatcher: ToolDispatcher,
        model: str,
        tool_schemas: Sequence[Dict[str, Any]],
        token_budget: TokenBudget,
        compactor: Optional[ContextCompactor] = None,
        validator: Optional[ProtocolValidator] = None,
        ground_control: Optional[GroundControl] = None,
        dom_limit: int = 100_000,
        sleep: SleepFn = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.dispatcher = dispatcher
        self.model = model
        self.tool_schemas = list(tool_schemas)
        self.token_budget = token_budget
        self.compactor = compactor or ContextCompactor()
        self.validator = validator or ProtocolValidator()
        self.ground_control = ground_control
        self.dom_limit = dom_limit
        self.sleep = sleep
        self.logger = logger or logging.getLogger("turn_loop")
        self.state = LoopState.RUNNING
        self._refresh_ids = itertools.count(1)

        if ground_control is not None:
            self.dispatcher.update(ground_control.tools())

    async def run(
        self,
        conversation: Conversation,
        max_turns: int,
        retry_limit: int = 2,
        step_sink: Optional[StepSink] = None,
    ) -> TurnLoopResult:
        """
        Run turns until SUCCESS, FAILURE or ABORTED.

        ``conversation`` is mutated in place. Every Step produced is returned
        and, when given, also passed to ``step_sink`` as soon as it exists.
        """
        steps: List[Step] = []

        def emit(step: Step) -> None:
            steps.append(step)
            if step_sink is not None:
                step_sink(step)

        self.state = LoopState.RUNNING

        if max_turns <= 0:
            emit(Step(turn_index=0, events=("Out of turns",), result=StepResult.OUT_OF_TURNS))
            return self._finish(False, steps, LoopState.FAILURE)

        for turn in range(1, max_turns + 1):
            self.logger.info(f"Turn {turn}/{max_turns}")
            outcome = await self._run_turn(turn, conversation, retry_limit, emit)

            result = outcome.result
            if turn == max_turns and result not in (
                StepResult.SUCCESS,
                StepResult.FAILURE,
                StepResult.ABORTED,
            ):
                outcome.events.append("Out of turns")
                result = StepResult.OUT_OF_TURNS

            emit(
                Step(
                    turn_index=turn,
                    events=tuple(outcome.events),
                    result=result,
                    tokens_used=outcome.tokens_used,
                    summary=outcome.summary,
                    screenshot_path=outcome.screenshot_path,
                    file_events=tuple(outcome.file_events),
                )
            )

            if result == StepResult.SUCCESS:
                return self._finish(True, steps, LoopState.SUCCESS, outcome.final_message)
            if result == StepResult.FAILURE:
                return self._finish(False, steps, LoopState.FAILURE, outcome.final_message)
            if result == StepResult.ABORTED:
                return self._finish(False, steps, LoopState.ABORTED, outcome.final_message)

        self.logger.warning(f"Out of turns after {max_turns} turn(s)")
        return self._finish(False, steps, LoopState.FAILURE)

    def _finish(
        self,
        success: bool,
        steps: List[Step],
        state: LoopState,
        final_message: Optional[str] = None,
    ) -> TurnLoopResult:
        self.state = state
        self.logger.info(f"Turn loop finished: {state.value} after {len(steps)} step(s)")
        return TurnLoopResult(success=success, steps=steps, state=state, final_message=final_message)

    async def _run_turn(
        self,
        turn: int,
        conversation: Conversation,
        retry_limit: int,
        emit: Callable[[Step], None],
    ) -> _TurnOutcome:
        self.state = LoopState.RUNNING
        outcome = _TurnOutcome(result=StepResult.PASSED)
        if self.ground_control is not None:
            self.ground_control.turn_index = turn

        await self._apply_token_backoff(outcome.events)

        self.compactor.compact(conversation)
        self._refresh_ground_control_note(conversation)

        try:
            self.validator.ensure_valid(conversation, insert_placeholders=True)
        except ProtocolError as e:
            self.logger.error(f"Conversation could not be repaired: {e.message}")
            outcome.events.append(f"Conversation could not be repaired before the model call: {e.message}")
            outcome.result = StepResult.ABORTED
            return outcome

        self.state = LoopState.AWAITING_LLM
        try:
            response = await self._chat_with_retry(conversation, turn, retry_limit, emit)
        except LLMStatusError as e:
            if e.is_rate_limited:
                self.logger.error(f"Rate limit retries exhausted after {retry_limit} retries")
                outcome.events.append(f"Rate limited (HTTP 429): retries exhausted after {retry_limit}")
            elif e.is_bad_request:
                self.logger.error(f"Bad request: {e.message}")
                outcome.events.append(f"Bad request (HTTP 400): {truncate_middle(e.message, EVENT_PREVIEW_CHARS)}")
            else:
                raise
            outcome.result = StepResult.ABORTED
            return outcome

        outcome.tokens_used = response.total_tokens
        self.token_budget.record(response.total_tokens)
        if response.headers:
            self.token_budget.learn_from_headers(response.headers, self.model)
        self.logger.info(f"Tokens this turn: {response.total_tokens} (window total {self.token_budget.total_tokens_used})")

        msg = response.message
        outcome.summary = summarize_turn_intent(msg)

        if isinstance(msg, AssistantToolCallsMessage):
            self.state = LoopState.PROCESSING_TOOLS
            await self._process_tool_calls(msg, conversation, outcome)
            return outcome

        content = msg.content if isinstance(msg, AssistantTextMessage) else ""
        verdict = (content or "").strip().lower()
        if verdict.startswith("success"):
            conversation.append(msg)
            outcome.result = StepResult.SUCCESS
            outcome.final_message = content
            outcome.events.append(f"Final: {truncate_middle(redact_password_in_text(content), EVENT_PREVIEW_CHARS)}")
            self.logger.info(f"Mission verdict: SUCCESS - {truncate_middle(content, EVENT_PREVIEW_CHARS)}")
            return outcome
        if verdict.startswith("failure"):
            conversation.append(msg)
            outcome.result = StepResult.FAILURE
            outcome.final_message = content
            outcome.events.append(f"Final: {truncate_middle(redact_password_in_text(content), EVENT_PREVIEW_CHARS)}")
            self.logger.info(f"Mission verdict: FAILURE - {truncate_middle(content, EVENT_PREVIEW_CHARS)}")
            return outcome

        outcome.result = StepResult.CONTINUED
        if content:
            outcome.events.append(f"Narration: {truncate_middle(redact_password_in_text(content), EVENT_PREVIEW_CHARS)}")
        await self._inject_dom_refresh(conversation, outcome.events)
        return outcome

    async def _apply_token_backoff(self, events: List[str]) -> None:
        # Re-checks without advancing the turn; a backoff resets the window so this ends.
        while True:
            total = self.token_budget.refresh()
            decision = self.token_budget.should_backoff(total, self.token_budget.window, self.model)
            if not decision.should_backoff:
                return
            seconds = decision.wait_ms / 1000
            await self.sleep(seconds)
            events.append(f"Token backoff: waited {seconds:.1f}s")
            self.logger.info("Backoff complete, resuming")

    def _refresh_ground_control_note(self, conversation: Conversation) -> None:
        conversation[:] = [
            m for m in conversation if not (isinstance(m, SystemMessage) and m.name == NOTE_NAME)
        ]
        if self.ground_control is None:
            return
        note = self.ground_control.prompt_note()
        if note is None:
            return
        insert_at = 0
        while insert_at < len(conversation) and isinstance(conversation[insert_at], SystemMessage):
            insert_at += 1
        conversation.insert(insert_at, SystemMessage(content=note, name=NOTE_NAME))

    async def _chat_with_retry(
        self,
        conversation: Conversation,
        turn: int,
        retry_limit: int,
        emit: Callable[[Step], None],
    ) -> ChatResponse:
        def on_rate_limited(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            attempt = retry_state.attempt_number
            self.state = LoopState.RETRYING_TURN
            if isinstance(error, LLMStatusError):
                self.token_budget.learn_from_headers(error.headers, self.model)
            self.logger.warning(f"Rate limited. Retrying in {delay:.0f}s... (retry {attempt}/{retry_limit})")
            emit(
                Step(
                    turn_index=turn,
                    events=(f"Rate limited (HTTP 429); retrying in {delay:.0f}s (retry {attempt}/{retry_limit})",),
                    result=StepResult.RATE_LIMITED,
                    retry_attempt=attempt,
                )
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_rate_limited),
            wait=wait_exponential(multiplier=2, min=2, max=60),
            stop=stop_after_attempt(max(0, retry_limit) + 1),
            sleep=self.sleep,
            before_sleep=on_rate_limited,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self.provider.chat(self.model, list(conversation), self.tool_schemas)
        return response

    async def _process_tool_calls(
        self,
        msg: AssistantToolCallsMessage,
        conversation: Conversation,
        outcome: _TurnOutcome,
    ) -> None:
        conversation.append(msg)
        saw_error = False
        needs_refresh = False

        for call in msg.tool_calls:
            self.logger.info(f"[model] -> {call.name}")
            text = await self.dispatcher.dispatch_call(call)
            conversation.append(ToolResultMessage(tool_call_id=call.id, name=call.name, content=text))
            outcome.events.append(f"{call.name}: {truncate_middle(text, EVENT_PREVIEW_CHARS)}")

            if text.startswith("ERROR:"):
                saw_error = True
            file_event = _parse_file_event(text)
            if file_event is not None:
                outcome.file_events.append(file_event)
                if file_event.get(FILE_EVENT_KEY) == "screenshot" and file_event.get("path"):
                    outcome.screenshot_path = str(file_event["path"])
            if call.name in DOM_REFRESH_AFTER:
                needs_refresh = True

        # Refresh once, after the whole batch, so tool results stay contiguous.
        if needs_refresh:
            await self._inject_dom_refresh(conversation, outcome.events, skip_after=frozenset())

        outcome.result = StepResult.ERROR if saw_error else StepResult.PASSED

    async def _inject_dom_refresh(
        self,
        conversation: Conversation,
        events: List[str],
        skip_after: FrozenSet[str] = DOM_REFRESH_SKIP_AFTER,
    ) -> None:
        """Append a synthetic get_dom exchange so the next turn sees the current page."""
        if not self.dispatcher.has_tool("get_dom"):
            return
        last = conversation[-1] if conversation else None
        if isinstance(last, ToolResultMessage) and last.name in skip_after:
            self.logger.debug(f"Skipping DOM refresh after {last.name}")
            return

        args = {"limit": self.dom_limit, "exclude": True}
        call = ToolCall(
            id=f"get_dom_{int(time.time() * 1000)}_{next(self._refresh_ids)}",
            name="get_dom",
            arguments=json.dumps(args),
        )
        conversation.append(AssistantToolCallsMessage(tool_calls=(call,)))
        html = await self.dispatcher.dispatch("get_dom", args)
        conversation.append(ToolResultMessage(tool_call_id=call.id, name="get_dom", content=html))
        events.append(f"DOM refreshed ({len(html)} chars)")
        self.logger.info(f"[auto] Injected DOM: {len(html)} chars (~{estimate_tokens(html)} tokens)")
