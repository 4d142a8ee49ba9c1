"""Rolling token-usage tracking and rate-limit backoff decisions.

Each mission owns one ``TokenBudget``; nothing here is process-wide, so two
missions in one interpreter never share rate-limit state.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

WINDOW_MS = 60_000
MIN_WAIT_MS = 1_000
FALLBACK_TPM = 150_000

# Checked in order: more specific prefixes first.
DEFAULT_LIMITS: List[Tuple[re.Pattern[str], int]] = [
    (re.compile(r"^gpt-5-nano(-|$)", re.I), 600_000),
    (re.compile(r"^gpt-5-mini(-|$)", re.I), 240_000),
    (re.compile(r"^gpt-5(-|$)", re.I), 90_000),
    (re.compile(r"^gpt-4o(-|$)", re.I), 450_000),
    (re.compile(r"^gpt-4\.1(-|$)", re.I), 1_000_000),
    (re.compile(r"^o3(-|$)", re.I), 300_000),
    (re.compile(r"^o4-mini(-|$)", re.I), 600_000),
    (re.compile(r"^gpt-4(-|$)", re.I), 150_000),
    (re.compile(r"^gpt-3\.5(-|$)", re.I), 600_000),
]

LIMIT_HEADERS = (
    "x-ratelimit-limit-tokens",
    "x-ratelimit-limit-tpm",
    "x-ratelimit-limit-token",
)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class TokenLimit:
    tpm: int
    source: str  # override | header | default | fallback


@dataclass(frozen=True)
class BackoffDecision:
    should_backoff: bool
    wait_ms: int = 0


class TokenUsageWindow:
    """Ordered (timestamp_ms, tokens) pairs bounded to a rolling window."""

    def __init__(self, window_ms: int = WINDOW_MS, clock: Callable[[], float] = _now_ms):
        self.window_ms = window_ms
        self.clock = clock
        self.entries: List[Tuple[float, int]] = []

    def record(self, tokens: int) -> None:
        self.entries.append((self.clock(), int(tokens)))

    def prune(self) -> int:
        """Discard entries older than the window and return the remaining sum."""
        cutoff = self.clock() - self.window_ms
        self.entries = [(ts, tokens) for ts, tokens in self.entries if ts > cutoff]
        return self.total

    @property
    def total(self) -> int:
        return sum(tokens for _, tokens in self.entries)

    def reset(self) -> None:
        self.entries = []

    def __len__(self) -> int:
        return len(self.entries)


def default_limit_for_model(model: str) -> TokenLimit:
    for pattern, tpm in DEFAULT_LIMITS:
        if pattern.search(model or ""):
            return TokenLimit(tpm=tpm, source="default")
    return TokenLimit(tpm=FALLBACK_TPM, source="fallback")


def parse_limit_headers(headers: Optional[Mapping[str, str]]) -> Optional[int]:
    """Return the token-per-minute cap advertised in rate-limit headers."""
    if not headers:
        return None
    lower = {str(k).lower(): v for k, v in dict(headers).items()}
    for name in LIMIT_HEADERS:
        raw = lower.get(name)
        if raw is None:
            continue
        try:
            value = int(float(raw))
        except (TypeError, ValueError):
            continue
        if value > 0:
            return value
    return None


def compute_backoff_ms(
    entries: List[Tuple[float, int]],
    ceiling: int,
    now_ms: float,
    window_ms: int = WINDOW_MS,
) -> int:
    """Minimal wait until the window drops back under ``ceiling``."""
    running = 0
    for ts, tokens in sorted(entries, key=lambda e: e[0]):
        running += tokens
        if running > ceiling:
            return int(max(window_ms - (now_ms - ts), MIN_WAIT_MS))
    return MIN_WAIT_MS


def estimate_tokens(text: object) -> int:
    """Rough token estimate (UTF-8 bytes / 4) for large tool payloads."""
    s = text if isinstance(text, str) else str(text or "")
    return -(-len(s.encode("utf-8")) // 4)


class TokenBudget:
    """Per-mission token accounting with ceiling resolution and backoff."""

    def __init__(
        self,
        model: str,
        overrides: Optional[Dict[str, int]] = None,
        global_override: Optional[int] = None,
        window_ms: int = WINDOW_MS,
        clock: Callable[[], float] = _now_ms,
        logger: Optional[logging.Logger] = None,
    ):
        self.model = model
        self.overrides = dict(overrides or {})
        self.global_override = global_override
        self.clock = clock
        self.window = TokenUsageWindow(window_ms=window_ms, clock=clock)
        self.total_tokens_used = 0
        self.logger = logger or logging.getLogger("token_budget")
        self._header_limits: Dict[str, int] = {}

    def resolve_limit(self, model: Optional[str] = None) -> TokenLimit:
        """Override > header-learned > static family table > fallback."""
        model = (model or self.model or "").strip() or "unknown"
        if self.overrides.get(model):
            return TokenLimit(tpm=int(self.overrides[model]), source="override")
        if self.global_override and self.global_override > 0:
            return TokenLimit(tpm=int(self.global_override), source="override")
        if model in self._header_limits:
            return TokenLimit(tpm=self._header_limits[model], source="header")
        return default_limit_for_model(model)

    def learn_from_headers(self, headers: Optional[Mapping[str, str]], model: Optional[str] = None) -> Optional[int]:
        """Adopt a server-advertised token cap, if the headers carry one."""
        model = model or self.model
        cap = parse_limit_headers(headers)
        if cap and self._header_limits.get(model) != cap:
            self._header_limits[model] = cap
            self.logger.info(f"Updated TPM for {model}: {cap} (from headers)")
        return cap

    def refresh(self) -> int:
        """Drop stale usage and recompute the cumulative counter."""
        self.total_tokens_used = self.window.prune()
        return self.total_tokens_used

    def record(self, tokens: int) -> None:
        if not tokens:
            return
        self.window.record(tokens)
        self.total_tokens_used += int(tokens)

    def should_backoff(
        self,
        total_tokens_used: Optional[int] = None,
        window: Optional[TokenUsageWindow] = None,
        model: Optional[str] = None,
    ) -> BackoffDecision:
        """Decide whether the next call must wait, and for how long."""
        total = self.total_tokens_used if total_tokens_used is None else total_tokens_used
        window = window or self.window
        limit = self.resolve_limit(model)
        if total <= limit.tpm:
            return BackoffDecision(should_backoff=False)

        wait_ms = compute_backoff_ms(window.entries, limit.tpm, self.clock(), window.window_ms)
        self.logger.warning(
            f"Token throttle risk ({total}/{limit.tpm}, {limit.source}) -> waiting {wait_ms / 1000:.1f}s"
        )
        self.reset()
        if window is not self.window:
            window.reset()
        return BackoffDecision(should_backoff=True, wait_ms=wait_ms)

    def reset(self) -> None:
        """Hard-reset the window and cumulative counter."""
        self.window.reset()
        self.total_tokens_used = 0
