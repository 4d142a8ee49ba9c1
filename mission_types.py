"""Typed records produced while running natural-language missions."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Tool results that are JSON objects carrying this key describe a produced file.
FILE_EVENT_KEY = "_testronaut_file_event"


class StepResult(str, Enum):
    """Outcome of one turn attempt."""

    PASSED = "passed"
    ERROR = "error"
    CONTINUED = "continued"
    RATE_LIMITED = "rate_limited"
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"
    OUT_OF_TURNS = "out_of_turns"


class LoopState(str, Enum):
    """States of the per-mission turn loop."""

    RUNNING = "running"
    AWAITING_LLM = "awaiting_llm"
    PROCESSING_TOOLS = "processing_tools"
    RETRYING_TURN = "retrying_turn"
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.SUCCESS, LoopState.FAILURE, LoopState.ABORTED)


@dataclass(frozen=True)
class Step:
    """Audit record for one turn attempt."""

    turn_index: int
    events: Tuple[str, ...]
    result: StepResult
    tokens_used: int = 0
    retry_attempt: int = 0
    summary: str = ""
    screenshot_path: Optional[str] = None
    file_events: Tuple[Dict[str, Any], ...] = ()
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.result in (
            StepResult.SUCCESS,
            StepResult.FAILURE,
            StepResult.ABORTED,
            StepResult.OUT_OF_TURNS,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turn": self.turn_index,
            "events": list(self.events),
            "result": self.result.value,
            "tokens_used": self.tokens_used,
            "retry_attempt": self.retry_attempt,
            "summary": self.summary,
            "screenshot_path": self.screenshot_path,
            "file_events": [dict(e) for e in self.file_events],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TurnLoopResult:
    """Outcome of one turn-loop run."""

    success: bool
    steps: List[Step]
    state: LoopState
    final_message: Optional[str] = None

    @property
    def tokens_used(self) -> int:
        return sum(step.tokens_used for step in self.steps)


@dataclass
class MissionGoal:
    """One goal of a mission, as handed to the agent."""

    goal: str
    label: Optional[str] = None
    submission_name: Optional[str] = None


@dataclass
class MissionResult:
    """Outcome of a mission goal execution."""

    mission_name: str
    goal: MissionGoal
    success: bool
    started_at: datetime
    finished_at: datetime
    steps: List[Step] = field(default_factory=list)
    final_message: Optional[str] = None
    ground_control: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def status(self) -> str:
        return "passed" if self.success else "failed"
