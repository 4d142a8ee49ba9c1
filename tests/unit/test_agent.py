"""Unit tests for agent module."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent import MissionAgent
from config import AgentConfig, TestronautConfig
from llm import ChatResponse
from message_types import AssistantTextMessage, UserMessage
from mission_types import MissionGoal, StepResult


def _reply(text: str) -> ChatResponse:
    return ChatResponse(message=AssistantTextMessage(content=text), total_tokens=10)


@pytest.fixture
def config(clean_env) -> TestronautConfig:
    return TestronautConfig(agent=AgentConfig(api_key="sk-test", max_turns=5))


class TestMissionAgent:
    """Tests for MissionAgent."""

    @pytest.mark.asyncio
    async def test_runs_all_goals(self, config, mock_browser, recording_sleep):
        provider = MagicMock()
        provider.chat = AsyncMock(side_effect=[_reply("SUCCESS: logged in"), _reply("SUCCESS: logged out")])
        agent = MissionAgent(config, provider=provider, browser=mock_browser, sleep=recording_sleep)

        results = await agent.run_goals(
            [MissionGoal(goal="Log in", label="login"), MissionGoal(goal="Log out", label="logout")],
            mission_name="auth",
        )

        assert [r.status for r in results] == ["passed", "passed"]
        assert results[0].steps[-1].result == StepResult.SUCCESS
        assert results[0].final_message == "SUCCESS: logged in"
        # Browser supplied by the caller is left alone.
        mock_browser.start.assert_not_awaited()
        mock_browser.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stops_at_first_failed_goal(self, config, mock_browser):
        provider = MagicMock()
        provider.chat = AsyncMock(side_effect=[_reply("SUCCESS: ok"), _reply("FAILURE: no logout link")])
        agent = MissionAgent(config, provider=provider, browser=mock_browser)

        results = await agent.run_goals(
            [
                MissionGoal(goal="Log in"),
                MissionGoal(goal="Log out"),
                MissionGoal(goal="Delete account"),
            ],
            mission_name="auth",
        )

        assert len(results) == 2
        assert not results[1].success
        assert provider.chat.await_count == 2

    @pytest.mark.asyncio
    async def test_each_goal_gets_fresh_conversation(self, config, mock_browser):
        provider = MagicMock()
        provider.chat = AsyncMock(side_effect=[_reply("SUCCESS: a"), _reply("SUCCESS: b")])
        agent = MissionAgent(config, provider=provider, browser=mock_browser)

        await agent.run_goals([MissionGoal(goal="Log in"), MissionGoal(goal="Log out")], mission_name="auth")

        second_messages = provider.chat.await_args_list[1].args[1]
        assert UserMessage(content="Log out") in second_messages
        assert UserMessage(content="Log in") not in second_messages

    def test_turn_budget_is_clamped(self, clean_env, mock_browser):
        config = TestronautConfig(agent=AgentConfig(api_key="sk-test", max_turns=500))
        agent = MissionAgent(config, provider=MagicMock(), browser=mock_browser)
        assert agent.max_turns == 200
