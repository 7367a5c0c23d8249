"""
Message reference resolution.

Turns what the user types after a command ("5", "3-9" or nothing) into
server UIDs, using the current ordered listing from the last search.
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

# Positions covered when no reference is given.
DEFAULT_RANGE_SIZE = 16

_SINGLE_RE = re.compile(r"^\s*(\d+)\s*$")
_RANGE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


class MalformedReference(ValueError):
    """Raised when a message reference is neither `n` nor `n-m`."""
    pass


@dataclass(frozen=True)
class ResolvedRange:
    """
    Result of resolving a reference.

    `start_index` is the 1-based position of the first requested message;
    `ids` holds the UIDs that actually exist at the requested positions
    and is empty when the reference points past the listing.
    """
    start_index: int
    ids: Tuple[int, ...]

    def __bool__(self) -> bool:
        return bool(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def positions(self) -> Tuple[Tuple[int, int], ...]:
        """Pairs of (positional index, uid)."""
        return tuple((self.start_index + offset, uid) for offset, uid in enumerate(self.ids))


def is_reference(text: Optional[str]) -> bool:
    """
    Check whether text is a well-formed single index or range.

    Args:
        text: User input.

    Returns:
        bool: True for `n` or `n-m`.
    """
    if not text:
        return False
    return bool(_SINGLE_RE.match(text) or _RANGE_RE.match(text))


def resolve(reference: Optional[str], listing: Sequence[int]) -> ResolvedRange:
    """
    Resolve a user-typed reference against the ordered listing.

    A range reaching past the end of the listing is clamped rather than
    rejected, and a single index past the end resolves to no messages.
    The listing is never modified.

    Args:
        reference: `n`, `n-m`, or empty/None for positions 1 to DEFAULT_RANGE_SIZE.
        listing: UIDs in display order.

    Returns:
        ResolvedRange: Start position and the UIDs found.

    Raises:
        MalformedReference: If the reference has any other syntax, or a
            position is zero, or the range runs backwards.
    """
    if reference is None or not reference.strip():
        return _slice(listing, 1, DEFAULT_RANGE_SIZE)

    match = _SINGLE_RE.match(reference)
    if match:
        index = int(match.group(1))
        if index < 1:
            raise MalformedReference(f"message index must be 1 or more: {reference!r}")
        if index > len(listing):
            return ResolvedRange(start_index=index, ids=())
        return ResolvedRange(start_index=index, ids=(listing[index - 1],))

    match = _RANGE_RE.match(reference)
    if match:
        first, last = int(match.group(1)), int(match.group(2))
        if first < 1:
            raise MalformedReference(f"message index must be 1 or more: {reference!r}")
        if last < first:
            raise MalformedReference(f"range end before range start: {reference!r}")
        return _slice(listing, first, last)

    raise MalformedReference(f"expected a message number or range like 3-9, got {reference!r}")


def _slice(listing: Sequence[int], first: int, last: int) -> ResolvedRange:
    last = min(last, len(listing))
    return ResolvedRange(start_index=first, ids=tuple(listing[first - 1:last]))
