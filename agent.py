"""Mission agent: runs a browser-backed turn loop over a sequence of goals."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from browser import BROWSER_TOOLS, ChromeBrowser
from config import TestronautConfig, enforce_turn_budget
from context_compactor import ContextCompactor
from ground_control import GroundControl
from llm import ChatProvider, get_llm
from message_types import Conversation, SystemMessage, UserMessage
from mission_types import MissionGoal, MissionResult, Step
from prompts import get_mission_system_prompt
from protocol_validator import ProtocolValidator
from token_budget import TokenBudget
from tool_dispatcher import ToolDispatcher
from tool_schema import TOOL_SCHEMAS
from turn_loop import TurnLoop


class MissionAgent:
    """Owns the browser and runs each goal of a mission through its own TurnLoop."""

    def __init__(
        self,
        config: TestronautConfig,
        provider: Optional[ChatProvider] = None,
        browser: Optional[ChromeBrowser] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        step_sink: Optional[Callable[[Step], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger("mission_agent")
        self.provider = provider or get_llm(
            config.agent.provider,
            api_key=config.agent.api_key,
            base_url=config.agent.base_url,
        )
        self._owns_browser = browser is None
        self.browser = browser or ChromeBrowser(
            browser_type=config.browser.browser,
            headless=config.browser.headless,
            viewport_width=config.browser.viewport_width,
            viewport_height=config.browser.viewport_height,
            screenshots_folder=config.browser.screenshots_folder,
            slow_mo=config.browser.slow_mo,
            dom_limit=config.context.dom_limit,
            dom_list_limit=config.context.dom_list_limit,
        )
        self.sleep = sleep
        self.step_sink = step_sink

        budget = enforce_turn_budget(config)
        for note in budget.notes:
            self.logger.warning(note)
        self.max_turns = budget.effective_max

    async def start(self) -> None:
        if self._owns_browser:
            await self.browser.start()

    async def close(self) -> None:
        if self._owns_browser:
            await self.browser.close()

    def _build_conversation(self, goal: MissionGoal) -> Conversation:
        return [
            SystemMessage(content=get_mission_system_prompt()),
            UserMessage(content=str(goal.goal)),
        ]

    def _build_loop(self, ground_control: GroundControl) -> TurnLoop:
        agent_cfg = self.config.agent
        context_cfg = self.config.context
        return TurnLoop(
            provider=self.provider,
            dispatcher=ToolDispatcher(BROWSER_TOOLS, context=self.browser),
            model=agent_cfg.model,
            tool_schemas=TOOL_SCHEMAS,
            token_budget=TokenBudget(
                agent_cfg.model,
                overrides=agent_cfg.tokens_per_min,
                global_override=agent_cfg.tokens_per_min_global,
            ),
            compactor=ContextCompactor(
                max_non_system_messages=context_cfg.max_non_system_messages,
                keep_recent_per_tool=context_cfg.keep_recent_per_tool,
            ),
            validator=ProtocolValidator(),
            ground_control=ground_control,
            dom_limit=context_cfg.dom_limit,
            sleep=self.sleep,
        )

    async def run_goal(self, goal: MissionGoal, mission_name: str) -> MissionResult:
        """Run one goal with a fresh conversation, token budget and Ground Control."""
        label = goal.label or goal.submission_name or "goal"
        self.logger.info(f"[{mission_name}] Starting goal: {label}")
        ground_control = GroundControl()
        loop = self._build_loop(ground_control)

        started_at = datetime.utcnow()
        result = await loop.run(
            self._build_conversation(goal),
            max_turns=self.max_turns,
            retry_limit=self.config.agent.retry_limit,
            step_sink=self.step_sink,
        )
        finished_at = datetime.utcnow()

        mission_result = MissionResult(
            mission_name=mission_name,
            goal=goal,
            success=result.success,
            started_at=started_at,
            finished_at=finished_at,
            steps=list(result.steps),
            final_message=result.final_message,
            ground_control=ground_control.snapshot(),
        )
        self.logger.info(
            f"[{mission_name}] Goal {label} {mission_result.status} "
            f"in {mission_result.step_count} step(s), {result.tokens_used} tokens"
        )
        return mission_result

    async def run_goals(self, goals: Sequence[MissionGoal], mission_name: str) -> List[MissionResult]:
        """Run goals in order and stop at the first one that fails."""
        results: List[MissionResult] = []
        await self.start()
        try:
            for goal in goals:
                mission_result = await self.run_goal(goal, mission_name)
                results.append(mission_result)
                if not mission_result.success:
                    self.logger.warning(f"[{mission_name}] Agent stopped due to failed goal")
                    return results
            self.logger.info(f"[{mission_name}] All goals completed successfully")
            return results
        finally:
            await self.close()
