"""Unit tests for run_mission CLI."""
from __future__ import annotations

import json
from datetime import datetime

import pytest

from mission_types import MissionGoal, MissionResult, Step, StepResult
from run_mission import build_parser, main, write_results


class TestParser:
    """Tests for argument parsing."""

    def test_repeated_goals(self):
        args = build_parser().parse_args(["--goal", "Log in", "--goal", "Log out", "--turns", "7"])
        assert args.goal == ["Log in", "Log out"]
        assert args.turns == 7
        assert args.mission == "adhoc"
        assert args.headful is None

    def test_goal_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Tests for the CLI entry point."""

    @pytest.mark.asyncio
    async def test_missing_config_file_returns_error(self, clean_env, temp_dir):
        code = await main(["--goal", "Log in", "--config", str(temp_dir / "missing.yaml")])
        assert code == 1


class TestWriteResults:
    """Tests for JSON result output."""

    def test_writes_payload(self, temp_dir):
        result = MissionResult(
            mission_name="auth",
            goal=MissionGoal(goal="Log in", label="login"),
            success=True,
            started_at=datetime(2024, 1, 1, 10, 0, 0),
            finished_at=datetime(2024, 1, 1, 10, 0, 5),
            steps=[Step(turn_index=1, events=("Final: SUCCESS",), result=StepResult.SUCCESS)],
            final_message="SUCCESS",
        )
        path = temp_dir / "out" / "results.json"

        write_results(path, [result])

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0]["goal"] == "login"
        assert data[0]["status"] == "passed"
        assert data[0]["steps"][0]["result"] == "success"
