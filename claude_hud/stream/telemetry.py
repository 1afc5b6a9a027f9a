"""
Context and Cost Telemetry
==========================

Pure helpers that turn raw token counts into the ContextUsage and
CostEstimate records stored through ``context`` / ``cost`` actions.

Thresholds are computed on usage plus the auto-compact reserve, so the
warning colours fire before the host compacts; the displayed percent is
raw usage.
"""

import math
from typing import Optional

from claude_hud.core.models import (
    MAX_TOKEN_HISTORY,
    ContextBreakdown,
    ContextStatus,
    ContextUsage,
    CostEstimate,
)
from claude_hud.core.schemas import ModelPricing

# Tokens the host keeps in reserve for auto-compaction
AUTOCOMPACT_BUFFER = 45_000

WARNING_PERCENT = 70
CRITICAL_PERCENT = 85
COMPACT_PERCENT = 80

TOKENS_PER_MILLION = 1_000_000


def _percent(part: float, whole: float) -> int:
    if whole <= 0:
        return 0
    return max(0, min(100, round(part / whole * 100)))


def buffered_percent(tokens: int, max_tokens: int) -> int:
    """Usage percent including the auto-compact reserve."""
    if max_tokens <= AUTOCOMPACT_BUFFER:
        return _percent(tokens, max_tokens)
    return _percent(tokens + AUTOCOMPACT_BUFFER, max_tokens)


def _burn_rate(history: tuple) -> float:
    """Tokens per minute between the oldest and newest sample."""
    if len(history) < 2:
        return 0.0
    first_ts, first_tokens = history[0]
    last_ts, last_tokens = history[-1]
    elapsed_minutes = (last_ts - first_ts) / 60_000
    if elapsed_minutes <= 0:
        return 0.0
    return max(0.0, (last_tokens - first_tokens) / elapsed_minutes)


def compute_context_usage(
    previous: ContextUsage,
    tokens: int,
    max_tokens: int,
    now: float,
    breakdown: Optional[ContextBreakdown] = None,
) -> ContextUsage:
    """Fold one token sample into the running context usage."""
    tokens = max(0, tokens)
    history = (previous.token_history + ((now, tokens),))[-MAX_TOKEN_HISTORY:]
    buffered = buffered_percent(tokens, max_tokens)

    if buffered >= CRITICAL_PERCENT:
        status = ContextStatus.CRITICAL
    elif buffered >= WARNING_PERCENT:
        status = ContextStatus.WARNING
    else:
        status = ContextStatus.HEALTHY

    return ContextUsage(
        tokens=tokens,
        percent=_percent(tokens, max_tokens),
        remaining=max(0, max_tokens - tokens),
        max_tokens=max_tokens,
        burn_rate=_burn_rate(history),
        status=status,
        should_compact=buffered >= COMPACT_PERCENT,
        breakdown=breakdown or previous.breakdown,
        session_start=previous.session_start if previous.token_history else now,
        last_update=now,
        token_history=history,
    )


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    pricing: Optional[ModelPricing],
) -> CostEstimate:
    """Cost in USD from per-million-token rates. Zero cost without pricing."""
    if pricing is None:
        return CostEstimate(input_tokens=input_tokens, output_tokens=output_tokens)

    input_cost = input_tokens * pricing.input / TOKENS_PER_MILLION
    output_cost = output_tokens * pricing.output / TOKENS_PER_MILLION
    return CostEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
    )


def _one_decimal(value: float) -> str:
    # Round half up: 1250 tokens reads as 1.3k
    return f"{math.floor(value * 10 + 0.5) / 10:.1f}"


def format_tokens(count: float) -> str:
    """Compact token count: 999, 1.5k, 1.0M."""
    if count < 1_000:
        return str(int(count))
    if count < 1_000_000:
        return f"{_one_decimal(count / 1_000)}k"
    return f"{_one_decimal(count / 1_000_000)}M"
