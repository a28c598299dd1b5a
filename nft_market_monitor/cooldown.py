"""Decides whether a value-change alert (floor price, top bid) may fire."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CooldownVerdict(str, Enum):
    FIRE = "fire"
    NOT_NEW = "not_new"              # event already alerted
    COOLING_DOWN = "cooling_down"    # suppressed, event id deliberately not recorded
    UNCHANGED = "unchanged"          # same value as the last alert


@dataclass(frozen=True)
class CooldownDecision:
    verdict: CooldownVerdict
    ratio: Optional[float] = None
    override: bool = False

    @property
    def should_fire(self) -> bool:
        return self.verdict is CooldownVerdict.FIRE


def price_ratio(last_known_value: Optional[float], new_value: float) -> Optional[float]:
    if last_known_value is None or new_value == 0:
        return None
    return last_known_value / new_value


def is_large_swing(ratio: Optional[float], override_threshold: float) -> bool:
    # No prior value counts as a swing: there is nothing to compare against
    if ratio is None:
        return True
    return ratio > 1 + override_threshold or ratio < 1 - override_threshold


def evaluate_cooldown(
    event_id: str,
    new_value: float,
    last_seen_id: Optional[str],
    last_known_value: Optional[float],
    cooldown_active: bool,
    override_threshold: float,
    require_value_change: bool = False,
) -> CooldownDecision:
    """
    A large swing (``last / new`` outside ``1 +/- override_threshold``) fires
    even while the cooldown marker is set. A suppressed event is not recorded
    as seen, so once the cooldown lapses the same newest event is evaluated
    again and fires.
    """
    if event_id == last_seen_id:
        return CooldownDecision(CooldownVerdict.NOT_NEW)

    if require_value_change and last_known_value is not None and new_value == last_known_value:
        return CooldownDecision(CooldownVerdict.UNCHANGED, ratio=1.0)

    ratio = price_ratio(last_known_value, new_value)
    override = is_large_swing(ratio, override_threshold)
    if cooldown_active and not override:
        return CooldownDecision(CooldownVerdict.COOLING_DOWN, ratio=ratio)

    return CooldownDecision(CooldownVerdict.FIRE, ratio=ratio, override=override and cooldown_active)
