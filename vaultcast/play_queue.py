# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
QueueEngine — the locally owned playback queue.

Pure data-structure logic: no I/O, no events.  The engine facade serializes
calls and publishes snapshots after each mutation.

Invariant: ``current_index`` is -1 or a valid index into the item list.
Every operation targets items by position, never by media id, and an
out-of-range index is an error (QueueIndexError), never a silent clamp.

Navigation:
    next_index() / previous_index()   — compute the target, no side effects
                                        (beyond consuming the shuffle RNG)
    next() / previous()               — compute and commit
    Both return None at a repeat-none boundary ("no next item").
"""

import random

from .errors import EmptyQueueError, QueueError, QueueIndexError
from .models import QueueItem, QueueState, RepeatMode


class QueueEngine:
    def __init__(self, rng: random.Random | None = None):
        self._items: list[QueueItem] = []
        self._current_index = -1
        self._shuffle = False
        self._repeat = RepeatMode.NONE
        self._rng = rng or random.Random()

    # ── Read access ──

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_item(self) -> QueueItem | None:
        if self._current_index >= 0:
            return self._items[self._current_index]
        return None

    @property
    def shuffle_enabled(self) -> bool:
        return self._shuffle

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat

    def __len__(self):
        return len(self._items)

    def item_at(self, index: int) -> QueueItem:
        self._check_index(index)
        return self._items[index]

    def snapshot(self) -> QueueState:
        return QueueState(
            items=tuple(self._items),
            current_index=self._current_index,
            shuffle_enabled=self._shuffle,
            repeat_mode=self._repeat,
        )

    # ── Mutations ──

    def set_items(self, items):
        """Replace the whole queue; selects the first item (nothing plays)."""
        self._items = list(items)
        self._current_index = 0 if self._items else -1

    def add(self, item: QueueItem):
        self.add_many([item])

    def add_many(self, items):
        """Append items.  An empty queue gets its first item selected."""
        items = list(items)
        if not items:
            return
        was_empty = not self._items
        self._items.extend(items)
        if was_empty:
            self._current_index = 0

    def remove_at(self, index: int) -> QueueItem:
        self._check_index(index)
        removed = self._items.pop(index)
        if not self._items:
            self._current_index = -1
        elif index < self._current_index:
            self._current_index -= 1
        elif index == self._current_index:
            # The item that slid into this slot becomes current; removing
            # the last item selects the new last one.
            self._current_index = min(index, len(self._items) - 1)
        return removed

    def reorder(self, from_index: int, to_index: int):
        """Move one item, keeping the cursor on the same logical item."""
        self._check_index(from_index)
        self._check_index(to_index)
        if from_index == to_index:
            return
        item = self._items.pop(from_index)
        self._items.insert(to_index, item)

        current = self._current_index
        if current == from_index:
            self._current_index = to_index
        elif from_index < current <= to_index:
            self._current_index = current - 1
        elif to_index <= current < from_index:
            self._current_index = current + 1

    def clear(self):
        self._items.clear()
        self._current_index = -1

    def set_shuffle(self, enabled: bool):
        self._shuffle = bool(enabled)

    def set_repeat(self, mode):
        try:
            self._repeat = RepeatMode(mode)
        except ValueError:
            raise QueueError(f"Invalid repeat mode: {mode!r}") from None

    def select(self, index: int):
        """Make *index* current (playAtIndex).  Does not start playback."""
        self._check_index(index)
        self._current_index = index

    # ── Navigation ──

    def next_index(self) -> int | None:
        return self._navigate(+1)

    def previous_index(self) -> int | None:
        return self._navigate(-1)

    def next(self) -> int | None:
        index = self.next_index()
        if index is not None:
            self._current_index = index
        return index

    def previous(self) -> int | None:
        index = self.previous_index()
        if index is not None:
            self._current_index = index
        return index

    def _navigate(self, step: int) -> int | None:
        count = len(self._items)
        if count == 0:
            raise EmptyQueueError()
        current = self._current_index

        if current < 0:
            # Items but no selection yet: start from the top
            return self._random_index(current) if self._shuffle else 0

        if self._repeat == RepeatMode.ONE:
            return current

        if self._shuffle:
            return self._random_index(current)

        target = current + step
        if 0 <= target < count:
            return target
        if self._repeat == RepeatMode.ALL:
            return target % count
        return None

    def _random_index(self, current: int) -> int:
        count = len(self._items)
        if count == 1:
            return 0
        if current < 0:
            return self._rng.randrange(count)
        # Uniform over every index except the current one
        pick = self._rng.randrange(count - 1)
        return pick + 1 if pick >= current else pick

    def _check_index(self, index: int):
        if not isinstance(index, int) or isinstance(index, bool):
            raise QueueIndexError(f"Queue index must be an integer, got {index!r}")
        if not 0 <= index < len(self._items):
            raise QueueIndexError(
                f"Queue index {index} out of range (queue has {len(self._items)} items)")
