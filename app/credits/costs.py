"""
Action cost table.

Every paid tool declares its cost here. Some actions are flat per call,
others are priced from measured usage after the vendor call returns
(token counts, characters, audio minutes). The gate pre-checks the
estimate; the realized cost is what gets deducted.

Usage:
    from credits.costs import ActionKind, estimate_cost, token_cost

    estimate_cost(ActionKind.IMAGE_GENERATE, quantity=2)      # 1200
    estimate_cost(ActionKind.VIDEO_GENERATE, duration_seconds=8)  # 6000
    token_cost(prompt_tokens=1200, completion_tokens=800)     # 36
"""

from __future__ import annotations

import math

from django.db import models

from core.exceptions import ValidationError


class ActionKind(models.TextChoices):
    """Paid actions exposed by the dashboard tools."""

    CHAT = "chat", "Chat message"
    IMAGE_GENERATE = "image-generate", "Image generation"
    IMAGE_EDIT = "image-edit", "Image edit"
    IMAGE_ANALYZE = "image-analyze", "Image analysis"
    VIDEO_GENERATE = "video-generate", "Video generation"
    VIDEO_ANALYZE = "video-analyze", "Video analysis"
    AUDIO_TRANSCRIBE = "audio-transcribe", "Audio transcription"
    SPEECH_GENERATE = "speech-generate", "Speech generation"
    WEB_SEARCH = "web-search", "Web search"


# Base cost per unit (message, image, minute, 1K characters, call)
ACTION_COSTS: dict[str, int] = {
    ActionKind.CHAT: 30,
    ActionKind.IMAGE_GENERATE: 600,
    ActionKind.IMAGE_EDIT: 600,
    ActionKind.IMAGE_ANALYZE: 100,
    ActionKind.VIDEO_GENERATE: 6000,
    ActionKind.VIDEO_ANALYZE: 500,
    ActionKind.AUDIO_TRANSCRIBE: 300,
    ActionKind.SPEECH_GENERATE: 120,
    ActionKind.WEB_SEARCH: 150,
}

# Upper bound in seconds -> cost; longer than the last bucket is rejected
VIDEO_DURATION_BUCKETS: tuple[tuple[int, int], ...] = (
    (5, 3000),
    (6, 4000),
    (8, 6000),
)
DEFAULT_VIDEO_COST = ACTION_COSTS[ActionKind.VIDEO_GENERATE]

PROMPT_TOKEN_RATE = 0.01
COMPLETION_TOKEN_RATE = 0.03
SPEECH_CHARACTER_RATE = 0.1


def _action(action: str) -> ActionKind:
    try:
        return ActionKind(action)
    except ValueError:
        raise ValidationError(
            f"Unknown action kind: {action!r}",
            error_code="UNKNOWN_ACTION",
            details={"action": action},
        )


def video_cost(duration_seconds: int | None) -> int:
    """Cost of a generated video by requested duration bucket."""
    if duration_seconds is None:
        return DEFAULT_VIDEO_COST
    if duration_seconds <= 0:
        raise ValidationError(
            "Video duration must be positive",
            details={"duration_seconds": duration_seconds},
        )
    for upper_bound, cost in VIDEO_DURATION_BUCKETS:
        if duration_seconds <= upper_bound:
            return cost
    raise ValidationError(
        f"Video duration above {VIDEO_DURATION_BUCKETS[-1][0]}s is not supported",
        details={"duration_seconds": duration_seconds},
    )


def token_cost(prompt_tokens: int, completion_tokens: int) -> int:
    """Realized cost of a token-metered call (chat, transcription)."""
    return math.ceil(
        prompt_tokens * PROMPT_TOKEN_RATE + completion_tokens * COMPLETION_TOKEN_RATE
    )


def speech_cost(characters: int) -> int:
    """Realized cost of speech synthesis for ``characters`` of input text."""
    return math.ceil(characters * SPEECH_CHARACTER_RATE)


def estimate_cost(
    action: str,
    *,
    quantity: int = 1,
    duration_seconds: int | None = None,
    characters: int | None = None,
) -> int:
    """
    Worst-case pre-check cost for an action.

    Args:
        action: ActionKind value
        quantity: Units for per-unit actions (messages, images, calls)
        duration_seconds: Video length or audio length in seconds
        characters: Input text length for speech generation
    """
    action = _action(action)
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", details={"quantity": quantity})

    if action == ActionKind.VIDEO_GENERATE:
        return video_cost(duration_seconds) * quantity
    if action == ActionKind.AUDIO_TRANSCRIBE and duration_seconds is not None:
        minutes = max(1, math.ceil(duration_seconds / 60))
        return ACTION_COSTS[action] * minutes
    if action == ActionKind.SPEECH_GENERATE and characters is not None:
        thousands = max(1, math.ceil(characters / 1000))
        return ACTION_COSTS[action] * thousands
    return ACTION_COSTS[action] * quantity


def cost_table() -> list[dict]:
    """Cost table rows for display in the dashboard."""
    return [
        {"action": kind.value, "label": kind.label, "cost": ACTION_COSTS[kind]}
        for kind in ActionKind
    ]
