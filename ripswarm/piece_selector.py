"""Rarest-first selection of the pieces to request from peers."""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Sequence


class PieceSelector:
    """Chooses the next pieces to download, rarest first, then by index.

    Rarity per piece is the single source of truth. Whenever a rarity
    changes a new ``(rarity, index)`` entry is pushed on the heap; stale
    entries are discarded lazily when they are popped.
    """

    def __init__(self, have: Iterable[bool]) -> None:
        self._have: list[bool] = [bool(b) for b in have]
        n_pieces = len(self._have)
        self._rarity: list[int] = [0] * n_pieces
        self._queue: list[tuple[int, int]] = []
        self._peer_bitfields: dict[bytes, list[bool]] = {}
        self._in_flight: list[bool] = [False] * n_pieces

    @property
    def have(self) -> list[bool]:
        """A copy of our own bitfield."""
        return list(self._have)

    def update_from_self_have(self, bitfield: Iterable[bool]) -> None:
        """Set our own bitfield once the number of pieces becomes known."""
        self._have = [bool(b) for b in bitfield]
        n_pieces = len(self._have)

        for peer_bitfield in self._peer_bitfields.values():
            _resize(peer_bitfield, n_pieces)

        rarity = [0] * n_pieces
        for peer_bitfield in self._peer_bitfields.values():
            rarity = [
                count + 1 if has else count
                for count, has in zip(rarity, peer_bitfield)
            ]
        self._rarity = rarity

        for peer_id, peer_bitfield in list(self._peer_bitfields.items()):
            self.add_peer_bitfield(peer_id, list(peer_bitfield))

        _resize(self._in_flight, n_pieces)

    def add_peer(self, peer_id: bytes) -> None:
        """Register a peer with an empty bitfield; existing peers are kept."""
        if peer_id in self._peer_bitfields:
            return
        if self._have:
            n_pieces = len(self._have)
        else:
            first = next(iter(self._peer_bitfields.values()), None)
            n_pieces = len(first) if first is not None else 0
        self._peer_bitfields[peer_id] = [False] * n_pieces

    def remove_peer(self, peer_id: bytes) -> None:
        """Forget a peer and lower the rarity of the pieces it had."""
        bitfield = self._peer_bitfields.pop(peer_id, None)
        if bitfield is not None:
            self._update_queue(bitfield, increase=False)

    def add_peer_bitfield(self, peer_id: bytes, bitfield: Sequence[bool]) -> None:
        """Record the bitfield a registered peer sent; unknown peers are ignored."""
        if not bitfield:
            return
        if peer_id in self._peer_bitfields:
            self._peer_bitfields[peer_id] = [bool(b) for b in bitfield]
            self._update_queue(bitfield, increase=True)

    def update_from_peer_have(self, peer_id: bytes, index: int) -> None:
        """Record that a peer announced it has the piece at ``index``."""
        peer_bitfield = self._peer_bitfields.get(peer_id)
        if peer_bitfield is None:
            return
        if not (0 <= index < len(peer_bitfield) and index < len(self._rarity)):
            return
        peer_bitfield[index] = True
        self._rarity[index] += 1
        if index < len(self._have) and not self._have[index]:
            heapq.heappush(self._queue, (self._rarity[index], index))

    def select_pieces_for_peer(self, peer_id: bytes, count: int) -> list[int] | None:
        """Pick pieces the peer has, rarest first, and mark them in flight.

        Returns ``None`` when the peer is unknown or nothing can be picked.
        """
        bitfield = self._peer_bitfields.get(peer_id)
        if bitfield is None:
            return None
        selected: list[int] = []
        while len(selected) <= count and self._queue:
            rarity, index = heapq.heappop(self._queue)
            if (
                self._rarity[index] == rarity
                and index < len(bitfield)
                and bitfield[index]
                and not self._in_flight[index]
            ):
                selected.append(index)
                self._in_flight[index] = True
        return selected or None

    def peer_has(self, peer_id: bytes) -> list[bool] | None:
        """The bitfield known for a peer, or ``None`` if the peer is unknown."""
        bitfield = self._peer_bitfields.get(peer_id)
        return None if bitfield is None else list(bitfield)

    def mark_have(self, index: int) -> None:
        """Record that we now have the piece at ``index``."""
        if not 0 <= index < len(self._have):
            raise IndexError(f"piece index {index} out of range")
        self._have[index] = True

    def is_complete(self) -> bool:
        """Whether every piece in our bitfield is present."""
        return all(self._have)

    def _update_queue(self, bitfield: Iterable[bool], *, increase: bool) -> None:
        if not self._have:
            return
        for index, (has, we_have) in enumerate(zip(bitfield, self._have)):
            if index >= len(self._rarity):
                break
            if has and not we_have:
                if increase:
                    self._rarity[index] += 1
                else:
                    self._rarity[index] = max(0, self._rarity[index] - 1)
                heapq.heappush(self._queue, (self._rarity[index], index))


def _resize(values: list[bool], size: int) -> None:
    if len(values) > size:
        del values[size:]
    else:
        values.extend([False] * (size - len(values)))