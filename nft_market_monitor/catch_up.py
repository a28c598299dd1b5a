"""
Works out which items of a newest-first snapshot are new since the cursor.

Used by the listings and sales streams. The resolver is pure: it never touches
the store or the network, the stream poller applies the result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Hashable, List, Optional, Sequence, TypeVar

from .errors import MalformedResponseError
from .models import MarketEvent

E = TypeVar("E", bound=MarketEvent)


class CatchUpOutcome(str, Enum):
    EMPTY = "empty"                # nothing fetched
    FIRST_RUN = "first_run"        # no cursor yet, start from the newest item
    UP_TO_DATE = "up_to_date"      # newest item is the cursor
    NEW_EVENTS = "new_events"
    GAP = "gap"                    # cursor fell out of the fetched window


@dataclass
class CatchUpResult(Generic[E]):
    outcome: CatchUpOutcome
    # Oldest-first
    to_emit: List[E] = field(default_factory=list)
    # None means "leave the cursor as it is" (or clear it, for GAP)
    new_cursor: Optional[str] = None
    duplicates_skipped: int = 0
    gap_window: int = 0


def resolve_catch_up(
    snapshot: Sequence[E],
    last_seen_id: Optional[str],
    grouping_key: Optional[Callable[[E], Hashable]] = None,
) -> CatchUpResult[E]:
    """
    Resolve a newest-first ``snapshot`` against the persisted ``last_seen_id``.

    * empty snapshot: nothing to do, cursor unchanged
    * no cursor: nothing emitted, cursor moves to ``snapshot[0]``
    * cursor is ``snapshot[0]``: nothing new
    * cursor at index ``i``: ``snapshot[:i]`` is emitted oldest-first
    * cursor not found: a gap, nothing emitted and the caller clears the cursor
      so the next poll starts over like a first run

    When ``grouping_key`` is given, an item whose key equals the key of the
    item processed right before it (its next-older neighbour) is dropped. This
    collapses the same order posted on several marketplaces at once.
    """
    if not snapshot:
        return CatchUpResult(CatchUpOutcome.EMPTY)

    newest_id = snapshot[0].event_id
    if newest_id is None:
        raise MalformedResponseError("newest item of the snapshot has no id")

    if last_seen_id is None:
        return CatchUpResult(CatchUpOutcome.FIRST_RUN, new_cursor=newest_id)

    if newest_id == last_seen_id:
        return CatchUpResult(CatchUpOutcome.UP_TO_DATE)

    cursor_index = next(
        (i for i, event in enumerate(snapshot) if event.event_id == last_seen_id),
        None,
    )
    if cursor_index is None:
        return CatchUpResult(CatchUpOutcome.GAP, gap_window=len(snapshot))

    to_emit: List[E] = []
    duplicates = 0
    for i in range(cursor_index - 1, -1, -1):
        if grouping_key is not None and grouping_key(snapshot[i]) == grouping_key(snapshot[i + 1]):
            duplicates += 1
            continue
        to_emit.append(snapshot[i])

    return CatchUpResult(
        CatchUpOutcome.NEW_EVENTS,
        to_emit=to_emit,
        new_cursor=newest_id,
        duplicates_skipped=duplicates,
    )
