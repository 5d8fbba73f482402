"""Context window usage classification.

The agent runtime auto-compacts at roughly 77.5% of the model's window.
Usage is measured against that threshold, and at 80% of it the caller
should offer a manual compaction.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

COMPACT_THRESHOLD_RATIO = 0.775
WARNING_RATIO = 0.80


class UsageLevel(str, Enum):
    NO_DATA = "no-data"
    NORMAL = "normal"
    WARNING = "warning"
    COMPACTING = "compacting"


@dataclass(frozen=True)
class ContextUsage:
    level: UsageLevel
    input_tokens: Optional[int] = None
    context_window: Optional[int] = None
    compact_threshold: Optional[int] = None
    usage_ratio: Optional[float] = None

    @property
    def is_warning(self) -> bool:
        return self.level == UsageLevel.WARNING

    def can_compact(self, is_processing: bool = False) -> bool:
        """Whether a manual compaction should be offered right now."""
        return self.is_warning and not is_processing

    @property
    def display_text(self) -> Optional[str]:
        if self.input_tokens is None:
            return None
        if self.compact_threshold:
            return f"{format_tokens(self.input_tokens)} / {format_tokens(self.compact_threshold)}"
        return format_tokens(self.input_tokens)

    @property
    def percent_text(self) -> Optional[str]:
        if self.usage_ratio is None:
            return None
        return f"{math.floor(self.usage_ratio * 100 + 0.5)}%"

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "inputTokens": self.input_tokens,
            "contextWindow": self.context_window,
            "compactThreshold": self.compact_threshold,
            "usageRatio": self.usage_ratio,
            "displayText": self.display_text,
            "percentText": self.percent_text,
        }


def format_tokens(tokens: int) -> str:
    """1234 -> "1.2k", 1500000 -> "1.5M"."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}k"
    return str(tokens)


def compact_threshold(context_window: Optional[int]) -> Optional[int]:
    if not context_window or context_window <= 0:
        return None
    return math.floor(context_window * COMPACT_THRESHOLD_RATIO) or None


def compute_context_usage(
    input_tokens: Optional[int],
    context_window: Optional[int],
    is_compacting: bool = False,
) -> ContextUsage:
    """Classify token usage for one session.

    Compacting overrides everything. Missing or non-positive token counts
    mean there is no data yet, which is not the same as 0% used. Without a
    known window the tokens are reported but never classified as a warning.
    """
    if is_compacting:
        return ContextUsage(level=UsageLevel.COMPACTING, input_tokens=input_tokens, context_window=context_window)

    if input_tokens is None or input_tokens <= 0:
        return ContextUsage(level=UsageLevel.NO_DATA, context_window=context_window)

    threshold = compact_threshold(context_window)
    if threshold is None:
        return ContextUsage(level=UsageLevel.NORMAL, input_tokens=input_tokens)

    ratio = input_tokens / threshold
    return ContextUsage(
        level=UsageLevel.WARNING if ratio >= WARNING_RATIO else UsageLevel.NORMAL,
        input_tokens=input_tokens,
        context_window=context_window,
        compact_threshold=threshold,
        usage_ratio=ratio,
    )
