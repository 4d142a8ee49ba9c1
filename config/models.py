"""Pydantic configuration models for the Testronaut agent."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Set, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from exceptions import ConfigFileNotFoundError


# Load .env file if present
load_dotenv()

DEFAULT_CONFIG_FILE = "testronaut-config.json"
RETRY_LIMIT_MIN = 1
RETRY_LIMIT_MAX = 10
DOM_LIST_LIMIT_DEFAULT = 3
DOM_LIST_LIMIT_MAX = 100

# Environment wins over the config file for these; CLI flags still win over both.
ENV_OVERRIDES = {
    "provider": "TESTRONAUT_PROVIDER",
    "model": "TESTRONAUT_MODEL",
    "max_turns": "TESTRONAUT_TURNS",
    "retry_limit": "TESTRONAUT_RETRY_LIMIT",
}
ENV_DEFAULTS = {
    "tokens_per_min_global": "TESTRONAUT_TOKENS_PER_MIN",
    "api_key": "OPENAI_API_KEY",
    "base_url": "OPENAI_BASE_URL",
}


def clamp_retry_limit(value: int) -> int:
    return min(RETRY_LIMIT_MAX, max(RETRY_LIMIT_MIN, int(value)))


def parse_dom_list_limit(raw: Any) -> Tuple[bool, Optional[int]]:
    """
    Parse a DOM list limit; returns (parsed, value).

    "all" keeps every child (None), "none" collapses all (0), numbers are
    clamped to 0-100. Blank or unparseable input is reported as not parsed.
    """
    if raw is None or isinstance(raw, bool):
        return False, None
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered == "all":
            return True, None
        if lowered == "none":
            return True, 0
        try:
            raw = float(lowered)
        except ValueError:
            return False, None
    if not isinstance(raw, (int, float)) or raw != raw or raw in (float("inf"), float("-inf")):
        return False, None
    return True, min(DOM_LIST_LIMIT_MAX, max(0, int(raw)))


class AgentConfig(BaseModel):
    """LLM and turn-loop configuration."""

    provider: str = Field(
        default="openai",
        description="LLM provider adapter name",
    )
    model: str = Field(
        default="gpt-4o",
        description="Model name to use for the LLM",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for the LLM provider",
    )
    base_url: Optional[str] = Field(
        default=None,
        description="Optional base URL for an OpenAI-compatible endpoint",
    )
    max_turns: int = Field(
        default=20,
        ge=1,
        description="Turn budget per mission goal",
    )
    retry_limit: int = Field(
        default=2,
        description="Maximum HTTP 429 retries per turn (clamped to 1-10)",
    )
    tokens_per_min: Dict[str, int] = Field(
        default_factory=dict,
        description="Per-model token-per-minute ceilings that override learned and default limits",
    )
    tokens_per_min_global: Optional[int] = Field(
        default=None,
        gt=0,
        description="Single token-per-minute ceiling applied to every model",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure base_url doesn't have trailing slash."""
        return v.rstrip("/") if v else v

    @field_validator("retry_limit", mode="before")
    @classmethod
    def clamp_retry(cls, v: Any) -> int:
        """Out-of-range retry limits are clamped rather than rejected."""
        return clamp_retry_limit(v)

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any, info: ValidationInfo) -> Any:
        """
        Apply environment variables.

        TESTRONAUT_PROVIDER/MODEL/TURNS/RETRY_LIMIT override configured
        values unless the field is pinned by a CLI flag (validation context
        ``pinned_fields``). The remaining variables only fill unset fields.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        pinned = (info.context or {}).get("pinned_fields", ())
        for field_name, env_var in ENV_OVERRIDES.items():
            env_value = (os.getenv(env_var) or "").strip()
            if env_value and field_name not in pinned:
                data[field_name] = env_value
        for field_name, env_var in ENV_DEFAULTS.items():
            if data.get(field_name) is None:
                env_value = (os.getenv(env_var) or "").strip()
                if env_value:
                    data[field_name] = env_value
        return data


class ContextConfig(BaseModel):
    """Conversation compaction configuration."""

    max_non_system_messages: int = Field(
        default=40,
        ge=2,
        description="Non-system messages kept when pruning the conversation window",
    )
    keep_recent_per_tool: int = Field(
        default=2,
        ge=0,
        description="Latest heavy tool outputs (e.g. get_dom) kept verbatim",
    )
    dom_limit: int = Field(
        default=100_000,
        ge=1_000,
        description="Maximum characters returned by get_dom",
    )
    dom_list_limit: Optional[int] = Field(
        default=DOM_LIST_LIMIT_DEFAULT,
        description="Children kept per long list/section in get_dom (None keeps all, 0 collapses all)",
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_dom_list_limit(cls, data: Any) -> Any:
        """TESTRONAUT_DOM_LIST_LIMIT wins; unparseable values fall back to the default."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        parsed, value = parse_dom_list_limit(os.getenv("TESTRONAUT_DOM_LIST_LIMIT"))
        if not parsed and "dom_list_limit" in data:
            if data["dom_list_limit"] is None:
                return data
            parsed, value = parse_dom_list_limit(data["dom_list_limit"])
        data["dom_list_limit"] = value if parsed else DOM_LIST_LIMIT_DEFAULT
        return data


class BrowserConfig(BaseModel):
    """Browser automation configuration."""

    browser: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use",
    )
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    viewport_width: int = Field(
        default=1440,
        ge=800,
        le=3840,
        description="Browser viewport width",
    )
    viewport_height: int = Field(
        default=900,
        ge=600,
        le=2160,
        description="Browser viewport height",
    )
    slow_mo: int = Field(
        default=0,
        ge=0,
        le=5000,
        description="Slow down browser operations by this many ms",
    )
    screenshots_folder: Path = Field(
        default=Path("./missions/mission_reports/screenshots"),
        description="Directory for screenshots taken by the screenshot tool",
    )

    @field_validator("screenshots_folder", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v


class TestronautConfig(BaseModel):
    """Root configuration model combining all config sections."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    strict_limits: bool = Field(
        default=False,
        description="Fail instead of clamping when the turn budget is out of bounds",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose logging",
    )

    @classmethod
    def from_flat_dict(cls, data: Dict[str, Any]) -> "TestronautConfig":
        """Create config from the flat camelCase testronaut-config.json format."""
        agent_keys = {
            "provider": "provider",
            "model": "model",
            "maxTurns": "max_turns",
            "retryLimit": "retry_limit",
            "tokensPerMin": "tokens_per_min",
            "baseUrl": "base_url",
        }
        context_keys = {
            "maxNonSystemMessages": "max_non_system_messages",
            "keepRecentPerTool": "keep_recent_per_tool",
            "domLimit": "dom_limit",
            "domListLimit": "dom_list_limit",
        }
        browser_keys = {
            "browser": "browser",
            "headless": "headless",
            "slowMo": "slow_mo",
            "screenshotsFolder": "screenshots_folder",
        }

        nested: Dict[str, Any] = {
            "agent": {},
            "context": {},
            "browser": {},
        }

        for key, value in data.items():
            if key in agent_keys:
                nested["agent"][agent_keys[key]] = value
            elif key in context_keys:
                nested["context"][context_keys[key]] = value
            elif key in browser_keys:
                nested["browser"][browser_keys[key]] = value
            elif key == "strictLimits":
                nested["strict_limits"] = value
            elif key == "verbose":
                nested["verbose"] = value

        # Legacy: {"model": "openai"} with no provider meant the default OpenAI model.
        if "provider" not in data and data.get("model") == "openai":
            nested["agent"]["provider"] = "openai"
            nested["agent"].pop("model", None)

        return cls.model_validate(nested)


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
) -> TestronautConfig:
    """
    Load configuration from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. TESTRONAUT_PROVIDER, TESTRONAUT_MODEL, TESTRONAUT_TURNS, TESTRONAUT_RETRY_LIMIT
    3. Config file
    4. Remaining environment variables (API key, base URL, global TPM)
    5. Defaults
    """
    config_data: Dict[str, Any] = {}

    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_FILE)
    elif not Path(config_path).exists():
        raise ConfigFileNotFoundError(str(config_path))
    config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in {".yaml", ".yml"}:
                import yaml
                config_data = yaml.safe_load(f) or {}
            else:
                config_data = json.load(f)

    # Check if it's flat or nested format
    is_flat = any(key in config_data for key in ["provider", "model", "maxTurns", "retryLimit"])

    if is_flat:
        config = TestronautConfig.from_flat_dict(config_data)
    else:
        config = TestronautConfig.model_validate(config_data)

    # Apply CLI overrides
    if cli_overrides:
        config_dict = config.model_dump()
        pinned = _apply_overrides(config_dict, cli_overrides)
        config = TestronautConfig.model_validate(config_dict, context={"pinned_fields": pinned})

    return config


def _apply_overrides(config_dict: Dict[str, Any], overrides: Dict[str, Any]) -> Set[str]:
    """Apply CLI overrides to config dictionary; return the agent fields they set."""
    override_mapping = {
        "browser": ("browser", "browser"),
        "headless": ("browser", "headless"),
        "turns": ("agent", "max_turns"),
        "max_turns": ("agent", "max_turns"),
        "retry_limit": ("agent", "retry_limit"),
        "model": ("agent", "model"),
        "provider": ("agent", "provider"),
        "verbose": ("verbose", None),
        "strict_limits": ("strict_limits", None),
    }

    pinned: Set[str] = set()
    for key, value in overrides.items():
        if value is None:
            continue

        if key == "headful":
            config_dict["browser"]["headless"] = not value
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict[section][field] = value
                if section == "agent":
                    pinned.add(field)
    return pinned
