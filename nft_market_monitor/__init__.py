"""
NFT Market Monitor

Polls the Reservoir API for collection market events and posts deduplicated,
cooldown-limited alerts to Telegram channels.
"""

from .catch_up import CatchUpOutcome, CatchUpResult, resolve_catch_up
from .cooldown import CooldownDecision, CooldownVerdict, evaluate_cooldown
from .cursor_store import CursorStore, Stream, StreamKey

__all__ = [
    "CatchUpOutcome",
    "CatchUpResult",
    "CooldownDecision",
    "CooldownVerdict",
    "CursorStore",
    "Stream",
    "StreamKey",
    "evaluate_cooldown",
    "resolve_catch_up",
]
