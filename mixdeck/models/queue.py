"""Model for the play queue and its playback order policy."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

import shortuuid
from mashumaro import DataClassDictMixin

from .enums import Direction, RepeatMode
from .errors import InvalidCommand
from .track import Track


def _new_queue_item_id() -> str:
    return shortuuid.random(length=12)


@dataclass
class QueueItem(DataClassDictMixin):
    """A slot in the queue, holding a track."""

    track: Track
    queue_item_id: str = field(default_factory=_new_queue_item_id)


@dataclass
class QueueInfo(DataClassDictMixin):
    """Snapshot of the queue state as published to subscribers."""

    items: list[QueueItem]
    current_index: int | None
    repeat_mode: RepeatMode
    shuffle_enabled: bool
    play_order: list[int]


class PlayQueue:
    """
    Ordered list of tracks with repeat and shuffle policy.

    Items are kept in their natural (insertion) order. The play order is a
    list of queue item ids: identical to the natural order when shuffle is
    off, a seeded permutation when it is on. The cursor points into the
    play order.
    """

    def __init__(self, seed: int | None = None) -> None:
        """Initialize the queue, optionally with a seed for the shuffle rng."""
        self._items: list[QueueItem] = []
        self._order: list[str] = []
        self._cursor: int | None = None
        # play order position to continue from after the current item got removed
        self._resume_at: int | None = None
        self._rng = random.Random(seed)
        self.repeat_mode = RepeatMode.OFF
        self.shuffle_enabled = False

    def __len__(self) -> int:
        """Return the number of items in the queue."""
        return len(self._items)

    @property
    def items(self) -> list[QueueItem]:
        """Return the queue items in natural order."""
        return list(self._items)

    @property
    def tracks(self) -> list[Track]:
        """Return the tracks in natural order."""
        return [item.track for item in self._items]

    @property
    def current_item(self) -> QueueItem | None:
        """Return the current queue item."""
        if self._cursor is None:
            return None
        return self._get_item(self._order[self._cursor])

    @property
    def current_track(self) -> Track | None:
        """Return the current track."""
        if item := self.current_item:
            return item.track
        return None

    @property
    def current_index(self) -> int | None:
        """Return the (natural) index of the current item."""
        if self._cursor is None:
            return None
        return self.index_by_id(self._order[self._cursor])

    @property
    def play_order(self) -> list[int]:
        """Return the natural indexes of the items in the order they will be played."""
        index_map = {item.queue_item_id: index for index, item in enumerate(self._items)}
        return [index_map[queue_item_id] for queue_item_id in self._order]

    @property
    def info(self) -> QueueInfo:
        """Return a snapshot of the queue."""
        return QueueInfo(
            items=self.items,
            current_index=self.current_index,
            repeat_mode=self.repeat_mode,
            shuffle_enabled=self.shuffle_enabled,
            play_order=self.play_order,
        )

    def index_by_id(self, queue_item_id: str) -> int | None:
        """Get index by queue_item_id."""
        for index, item in enumerate(self._items):
            if item.queue_item_id == queue_item_id:
                return index
        return None

    def append(self, track: Track) -> QueueItem:
        """Add a track to the end of the queue."""
        item = QueueItem(track=track)
        self._items.append(item)
        self._order.append(item.queue_item_id)
        if self.shuffle_enabled:
            self._reshuffle_remainder()
        return item

    def remove(self, index: int) -> Track:
        """Remove the item at the given (natural) index and return its track."""
        item = self._item_at(index)
        self._items.remove(item)
        pos = self._order.index(item.queue_item_id)
        self._order.pop(pos)
        if self._cursor is not None:
            if pos == self._cursor:
                # current item removed, the one after it takes its place
                self._cursor = None
                self._resume_at = pos
            elif pos < self._cursor:
                self._cursor -= 1
        elif self._resume_at is not None and pos < self._resume_at:
            self._resume_at -= 1
        if not self._items:
            self._cursor = None
            self._resume_at = None
        elif self.shuffle_enabled:
            self._reshuffle_remainder()
        return item.track

    def move(self, from_index: int, to_index: int) -> None:
        """Move an item to another (natural) position."""
        item = self._item_at(from_index)
        if not 0 <= to_index < len(self._items):
            raise InvalidCommand(f"Invalid queue index {to_index}")
        self._items.remove(item)
        self._items.insert(to_index, item)
        if not self.shuffle_enabled:
            self._sync_natural_order()

    def clear(self) -> None:
        """Remove all items from the queue."""
        self._items = []
        self._order = []
        self._cursor = None
        self._resume_at = None

    def select(self, index: int) -> Track:
        """Make the item at the given (natural) index the current one."""
        item = self._item_at(index)
        self._cursor = self._order.index(item.queue_item_id)
        self._resume_at = None
        return item.track

    def select_track(self, track: Track) -> QueueItem:
        """Make the given track current, adding it to the queue if it is not in there yet."""
        if (current := self.current_item) and current.track.uri == track.uri:
            return current
        for index, item in enumerate(self._items):
            if item.track.uri == track.uri:
                self.select(index)
                return item
        item = self.append(track)
        self._cursor = self._order.index(item.queue_item_id)
        self._resume_at = None
        return item

    def replace_track(self, track: Track) -> None:
        """Replace the current item's track by an updated version of the same track."""
        if (item := self.current_item) and item.track.uri == track.uri:
            item.track = track

    def set_repeat_mode(self, repeat_mode: RepeatMode) -> None:
        """Set the repeat mode, the current item stays current."""
        self.repeat_mode = repeat_mode

    def set_shuffle(self, shuffle_enabled: bool) -> None:
        """Enable or disable shuffle, the current item stays current."""
        if shuffle_enabled == self.shuffle_enabled:
            return
        self.shuffle_enabled = shuffle_enabled
        current = self.current_item
        if not shuffle_enabled:
            self._sync_natural_order()
            return
        if current is None:
            self._order = self._shuffled([item.queue_item_id for item in self._items])
            if self._resume_at is not None:
                self._resume_at = 0
            return
        # the current track leads the new order, all others follow exactly once
        rest = [item.queue_item_id for item in self._items if item is not current]
        self._order = [current.queue_item_id, *self._shuffled(rest)]
        self._cursor = 0

    def advance(self, direction: Direction, is_skip: bool = True) -> Track | None:
        """
        Move the cursor to the next or previous item and return its track.

        Returns None (and clears the current item) when the end of the queue
        is reached and repeat is not set to all. From there a next advance
        stays at the end and a previous one returns to the last item. With
        repeat one, an automatic advance (is_skip False) keeps the current item.
        """
        if not self._items:
            self._cursor = None
            self._resume_at = None
            return None
        count = len(self._order)
        if self._cursor is None:
            if self._resume_at is None:
                return self._set_cursor(0)
            pos = self._resume_at if direction == Direction.NEXT else self._resume_at - 1
            self._resume_at = None
        elif self.repeat_mode == RepeatMode.ONE and not is_skip:
            return self.current_track
        elif direction == Direction.NEXT:
            pos = self._cursor + 1
        else:
            pos = self._cursor - 1
        if pos >= count:
            if self.repeat_mode != RepeatMode.ALL:
                # past the end, previous goes back to the last item
                self._cursor = None
                self._resume_at = count
                return None
            pos = 0
        elif pos < 0:
            pos = count - 1 if self.repeat_mode == RepeatMode.ALL else 0
        return self._set_cursor(pos)

    def rewind(self) -> Track | None:
        """Make the first item of the play order current and return its track."""
        self._resume_at = None
        if not self._order:
            self._cursor = None
            return None
        return self._set_cursor(0)

    def _set_cursor(self, pos: int) -> Track:
        self._cursor = pos
        return self._get_item(self._order[pos]).track

    def _get_item(self, queue_item_id: str) -> QueueItem:
        for item in self._items:
            if item.queue_item_id == queue_item_id:
                return item
        raise KeyError(queue_item_id)

    def _item_at(self, index: int) -> QueueItem:
        if not 0 <= index < len(self._items):
            raise InvalidCommand(f"Invalid queue index {index}")
        return self._items[index]

    def _sync_natural_order(self) -> None:
        """Reset the play order to the natural order, keeping the current item."""
        current_id = self._order[self._cursor] if self._cursor is not None else None
        self._order = [item.queue_item_id for item in self._items]
        if current_id is not None:
            self._cursor = self._order.index(current_id)

    def _reshuffle_remainder(self) -> None:
        """Reshuffle the part of the play order that has not been played yet."""
        if self._cursor is not None:
            split = self._cursor + 1
        elif self._resume_at is not None:
            split = self._resume_at
        else:
            split = 0
        self._order = self._order[:split] + self._shuffled(self._order[split:])

    def _shuffled(self, queue_item_ids: list[str]) -> list[str]:
        """Shuffle, trying to avoid the same track playing twice in a row."""
        result = list(queue_item_ids)
        self._rng.shuffle(result)
        uris = {item.queue_item_id: item.track.uri for item in self._items}
        for index in range(1, len(result)):
            if uris[result[index]] != uris[result[index - 1]]:
                continue
            for swap_index in range(index + 1, len(result)):
                if uris[result[swap_index]] != uris[result[index - 1]]:
                    result[index], result[swap_index] = result[swap_index], result[index]
                    break
        return result
