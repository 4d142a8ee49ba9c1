"""Configuration module for the Testronaut agent."""
from config.models import (
    AgentConfig,
    BrowserConfig,
    ContextConfig,
    TestronautConfig,
    load_config,
)
from config.limits import TurnBudget, TurnLimits, enforce_turn_budget

__all__ = [
    "AgentConfig",
    "BrowserConfig",
    "ContextConfig",
    "TestronautConfig",
    "TurnBudget",
    "TurnLimits",
    "enforce_turn_budget",
    "load_config",
]
