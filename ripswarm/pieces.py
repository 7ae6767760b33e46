"""Piece bookkeeping: block requests, the download queue and the output file."""

from __future__ import annotations

import hashlib
import os
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto

from ripswarm.errors import FileOpenError, PeerManagerError
from ripswarm.piece_selector import PieceSelector

BLOCK_MAX = 16 * 1024
"""Largest block size requested from a peer, in bytes."""

MAX_PIECES_IN_PARALLEL = 20
"""How many pieces are in the download queue at most."""

TIMEOUT_FOR_REQ = 10.0
"""Seconds after which a requested block may be requested again."""


def block_length(n_blocks: int, piece_size: int, block_index: int) -> int:
    """Length of the block at ``block_index`` of a piece of ``piece_size`` bytes."""
    if block_index == n_blocks - 1 and piece_size % BLOCK_MAX != 0:
        return piece_size % BLOCK_MAX
    return BLOCK_MAX


@dataclass(frozen=True)
class TorrentLayout:
    """The part of the metainfo needed to cut the data into pieces."""

    piece_length: int
    length: int
    piece_hashes: tuple[bytes, ...]

    def __post_init__(self) -> None:
        if self.piece_length <= 0:
            raise ValueError("piece_length must be positive")
        object.__setattr__(self, "piece_hashes", tuple(self.piece_hashes))

    def piece_count(self) -> int:
        """Number of pieces in the torrent."""
        return len(self.piece_hashes)

    def piece_size(self, index: int) -> int:
        """Size of the piece at ``index``; only the last one may be shorter."""
        remainder = self.length % self.piece_length
        if index == self.piece_count() - 1 and remainder != 0:
            return remainder
        return self.piece_length


@dataclass(frozen=True)
class BlockRequest:
    """A request for ``length`` bytes at ``begin`` inside piece ``index``."""

    index: int
    begin: int
    length: int


@dataclass(frozen=True)
class BlockResponse:
    """The data of one block of piece ``index`` starting at ``begin``."""

    index: int
    begin: int
    block: bytes


class _Status(Enum):
    PENDING = auto()
    IN_PROCESS = auto()
    FINISHED = auto()


@dataclass(frozen=True)
class BlockState:
    """Download state of a single block."""

    status: _Status = _Status.PENDING
    requested_at: float | None = None

    @classmethod
    def pending(cls) -> BlockState:
        return cls(_Status.PENDING)

    @classmethod
    def in_process(cls, requested_at: float | None = None) -> BlockState:
        at = time.monotonic() if requested_at is None else requested_at
        return cls(_Status.IN_PROCESS, at)

    @classmethod
    def finished(cls) -> BlockState:
        return cls(_Status.FINISHED)

    def is_finished(self) -> bool:
        return self.status is _Status.FINISHED

    def is_not_requested(self) -> bool:
        """Never requested, or requested so long ago that it timed out."""
        if self.status is _Status.PENDING:
            return True
        return (
            self.status is _Status.IN_PROCESS
            and self.requested_at is not None
            and time.monotonic() - self.requested_at >= TIMEOUT_FOR_REQ
        )


@dataclass
class PieceState:
    """A piece being downloaded: its blocks and the bytes received so far."""

    index: int
    blocks: list[BlockState]
    buf: bytearray = field(repr=False)

    @classmethod
    def for_piece(cls, layout: TorrentLayout, index: int) -> PieceState:
        """A fresh state for piece ``index`` with every block pending."""
        size = layout.piece_size(index)
        n_blocks = -(-size // BLOCK_MAX)
        return cls(index, [BlockState.pending() for _ in range(n_blocks)], bytearray(size))

    def update(self, response: BlockResponse) -> None:
        """Copy a received block into the buffer and mark it finished."""
        begin = response.begin
        end = begin + len(response.block)
        block_index = begin // BLOCK_MAX
        if begin < 0 or end > len(self.buf) or block_index >= len(self.blocks):
            raise ValueError(
                f"block at {begin} of length {len(response.block)} "
                f"does not fit piece {self.index}"
            )
        self.buf[begin:end] = response.block
        self.blocks[block_index] = BlockState.finished()

    def is_complete(self) -> bool:
        return all(block.is_finished() for block in self.blocks)

    def check_hash(self, layout: TorrentLayout) -> bool:
        """Whether the SHA-1 of the buffer matches the piece hash."""
        return hashlib.sha1(self.buf).digest() == layout.piece_hashes[self.index]

    def prepare_requests(self, n: int) -> list[BlockRequest]:
        """Requests for up to ``n`` blocks not yet requested; marks them in process."""
        n_blocks = len(self.blocks)
        piece_size = len(self.buf)
        requests: list[BlockRequest] = []
        for block_index, block in enumerate(self.blocks):
            if len(requests) >= n:
                break
            if not block.is_not_requested():
                continue
            self.blocks[block_index] = BlockState.in_process()
            requests.append(
                BlockRequest(
                    self.index,
                    block_index * BLOCK_MAX,
                    block_length(n_blocks, piece_size, block_index),
                )
            )
        return requests


class DownloadQueue:
    """The pieces currently being downloaded."""

    def __init__(self) -> None:
        self._pieces: list[PieceState] = []

    def __len__(self) -> int:
        return len(self._pieces)

    def __iter__(self) -> Iterator[PieceState]:
        return iter(self._pieces)

    def piece_for_peer(self, peer_has: Sequence[bool]) -> PieceState | None:
        """The first queued piece the peer has that still has blocks to request."""
        for piece in self._pieces:
            if piece.index >= len(peer_has) or not peer_has[piece.index]:
                continue
            if any(block.is_not_requested() for block in piece.blocks):
                return piece
        return None

    def add_pieces(self, pieces: Sequence[int], layout: TorrentLayout) -> None:
        for index in pieces:
            self._pieces.append(PieceState.for_piece(layout, index))

    def apply_block(self, response: BlockResponse) -> PieceState | None:
        """Store a block; a piece that is now complete is removed and returned.

        Blocks of pieces that are not queued are ignored.
        """
        for position, piece in enumerate(self._pieces):
            if piece.index == response.index:
                break
        else:
            return None
        piece.update(response)
        if not piece.is_complete():
            return None
        last = self._pieces.pop()
        if position < len(self._pieces):
            self._pieces[position] = last
        return piece


class PieceManager:
    """Turns selected pieces into block requests and stores verified pieces."""

    def __init__(self, file, info_hash_hex: str) -> None:
        self._file = file
        self.info_hash_hex = info_hash_hex
        self.download_queue = DownloadQueue()

    @classmethod
    def open(cls, path: str | os.PathLike[str], info_hash_hex: str) -> PieceManager:
        """Open (creating it if needed) the output file at ``path``."""
        try:
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as error:
            raise FileOpenError(path, error.strerror or error) from error
        return cls(os.fdopen(fd, "r+b"), info_hash_hex)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> PieceManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def prepare_next_blocks(
        self,
        selector: PieceSelector,
        n: int,
        peer_id: bytes,
        layout: TorrentLayout,
    ) -> list[BlockRequest] | None:
        """Up to ``n`` block requests for a peer, or ``None`` if there are none."""
        requests: list[BlockRequest] = []
        while len(requests) < n:
            peer_has = selector.peer_has(peer_id)
            if peer_has is None:
                break
            piece = self.download_queue.piece_for_peer(peer_has)
            if piece is None:
                chosen = selector.select_pieces_for_peer(peer_id, MAX_PIECES_IN_PARALLEL)
                if not chosen:
                    break
                self.download_queue.add_pieces(chosen, layout)
                continue
            requests.extend(piece.prepare_requests(n - len(requests)))
        return requests or None

    def write_block(
        self,
        selector: PieceSelector,
        response: BlockResponse,
        layout: TorrentLayout,
        save_bitfield: Callable[[str, list[bool]], object],
    ) -> int | None:
        """Store a block; returns the piece index once all its blocks arrived.

        A complete piece whose hash matches is written to the file, the new
        bitfield is saved through ``save_bitfield`` and only then recorded in
        the selector. A piece whose hash does not match is discarded.
        """
        piece = self.download_queue.apply_block(response)
        if piece is None:
            return None
        if piece.check_hash(layout):
            self._write_piece(piece, layout)
            bitfield = selector.have
            bitfield[piece.index] = True
            save_bitfield(self.info_hash_hex, bitfield)
            selector.mark_have(piece.index)
        return piece.index

    def get_block(
        self,
        selector: PieceSelector,
        request: BlockRequest,
        layout: TorrentLayout,
    ) -> BlockResponse | None:
        """Read a requested block from the file, if we have its piece."""
        if not selector.have[request.index]:
            return None
        offset = request.index * layout.piece_length + request.begin
        try:
            self._file.seek(offset)
            data = self._file.read(request.length)
        except OSError:
            return None
        if len(data) != request.length:
            return None
        return BlockResponse(request.index, request.begin, data)

    def _write_piece(self, piece: PieceState, layout: TorrentLayout) -> None:
        try:
            self._file.seek(piece.index * layout.piece_length)
            self._file.write(piece.buf)
            self._file.flush()
        except OSError as error:
            raise PeerManagerError(
                f"An error occured when writing to the file: `{error}`"
            ) from error