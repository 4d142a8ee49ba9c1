"""Turn-budget guardrails applied on top of the configured ``max_turns``."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import List, Optional

from config.models import TestronautConfig
from exceptions import ConfigurationError


@dataclass(frozen=True)
class TurnLimits:
    soft_max_turns: int = 50
    hard_max_turns: int = 200
    hard_min_turns: int = 5


@dataclass
class TurnBudget:
    effective_max: int
    limits: TurnLimits
    strict: bool
    notes: List[str] = field(default_factory=list)


def enforce_turn_budget(
    config: TestronautConfig,
    base_limits: Optional[TurnLimits] = None,
    strict: Optional[bool] = None,
) -> TurnBudget:
    """
    Compute the effective turn budget.

    Lenient mode clamps and records a note; strict mode (``strict_limits`` or
    the STRICT_LIMITS env var) raises ConfigurationError instead.
    """
    if strict is None:
        strict = bool(config.strict_limits or os.getenv("STRICT_LIMITS"))
    limits = base_limits or TurnLimits()
    notes: List[str] = []

    if limits.soft_max_turns > limits.hard_max_turns:
        if strict:
            raise ConfigurationError(
                f"softMaxTurns ({limits.soft_max_turns}) > hardMaxTurns ({limits.hard_max_turns})."
            )
        notes.append(f"Adjusted softMaxTurns down to hardMaxTurns ({limits.hard_max_turns}).")
        limits = replace(limits, soft_max_turns=limits.hard_max_turns)
    if limits.hard_min_turns > limits.soft_max_turns:
        if strict:
            raise ConfigurationError(
                f"hardMinTurns ({limits.hard_min_turns}) > softMaxTurns ({limits.soft_max_turns})."
            )
        notes.append(f"Adjusted hardMinTurns down to softMaxTurns ({limits.soft_max_turns}).")
        limits = replace(limits, hard_min_turns=limits.soft_max_turns)

    effective = config.agent.max_turns

    if effective > limits.hard_max_turns:
        msg = f"maxTurns ({effective}) exceeds hardMaxTurns ({limits.hard_max_turns})."
        if strict:
            raise ConfigurationError(msg, {"max_turns": effective})
        notes.append(f"{msg} Clamping to {limits.hard_max_turns}.")
        effective = limits.hard_max_turns
    elif effective > limits.soft_max_turns:
        msg = f"maxTurns ({effective}) exceeds softMaxTurns ({limits.soft_max_turns})."
        if strict:
            raise ConfigurationError(msg, {"max_turns": effective})
        notes.append(f"{msg} Proceeding, but consider lowering to control cost.")
    elif effective < limits.hard_min_turns:
        msg = f"maxTurns ({effective}) is below hardMinTurns ({limits.hard_min_turns})."
        if strict:
            raise ConfigurationError(msg, {"max_turns": effective})
        notes.append(f"{msg} Raising to {limits.hard_min_turns}.")
        effective = limits.hard_min_turns

    return TurnBudget(effective_max=effective, limits=limits, strict=strict, notes=notes)
