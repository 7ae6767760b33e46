import hashlib
import time

import pytest

from ripswarm.errors import FileOpenError
from ripswarm.piece_selector import PieceSelector
from ripswarm.pieces import (
    BLOCK_MAX,
    BlockRequest,
    BlockResponse,
    BlockState,
    DownloadQueue,
    PieceManager,
    PieceState,
    TorrentLayout,
    block_length,
)

PEER = b"p" * 20


def make_layout(data: bytes, piece_length: int) -> TorrentLayout:
    chunks = [data[i : i + piece_length] for i in range(0, len(data), piece_length)]
    return TorrentLayout(
        piece_length, len(data), tuple(hashlib.sha1(c).digest() for c in chunks)
    )


@pytest.fixture
def data():
    return bytes(range(256)) * ((2 * BLOCK_MAX + 100) // 256) + b"z" * (
        (2 * BLOCK_MAX + 100) % 256
    )


@pytest.fixture
def layout(data):
    return make_layout(data, 2 * BLOCK_MAX)


def test_block_length_full_and_last():
    assert block_length(2, 2 * BLOCK_MAX, 1) == BLOCK_MAX
    assert block_length(2, BLOCK_MAX + 5, 1) == 5
    assert block_length(2, BLOCK_MAX + 5, 0) == BLOCK_MAX


def test_layout_piece_sizes(layout):
    assert layout.piece_count() == 2
    assert layout.piece_size(0) == 2 * BLOCK_MAX
    assert layout.piece_size(1) == 100


def test_layout_rejects_zero_piece_length():
    with pytest.raises(ValueError):
        TorrentLayout(0, 10, ())


def test_piece_state_blocks(layout):
    piece = PieceState.for_piece(layout, 0)
    assert len(piece.blocks) == 2
    assert len(piece.buf) == 2 * BLOCK_MAX
    assert not piece.is_complete()


def test_prepare_requests_marks_blocks(layout):
    piece = PieceState.for_piece(layout, 0)
    first = piece.prepare_requests(1)
    assert first == [BlockRequest(0, 0, BLOCK_MAX)]
    rest = piece.prepare_requests(5)
    assert rest == [BlockRequest(0, BLOCK_MAX, BLOCK_MAX)]
    assert piece.prepare_requests(5) == []


def test_timed_out_block_is_requested_again(layout):
    piece = PieceState.for_piece(layout, 0)
    piece.prepare_requests(5)
    piece.blocks[0] = BlockState.in_process(time.monotonic() - 60)
    assert piece.prepare_requests(5) == [BlockRequest(0, 0, BLOCK_MAX)]


def test_update_and_hash(data, layout):
    piece = PieceState.for_piece(layout, 1)
    tail = data[2 * BLOCK_MAX :]
    piece.update(BlockResponse(1, 0, tail))
    assert piece.is_complete()
    assert bytes(piece.buf) == tail
    assert piece.check_hash(layout)


def test_update_with_wrong_data_fails_hash(layout):
    piece = PieceState.for_piece(layout, 1)
    piece.update(BlockResponse(1, 0, b"\x00" * 100))
    assert piece.is_complete()
    assert not piece.check_hash(layout)


def test_update_out_of_range(layout):
    piece = PieceState.for_piece(layout, 1)
    with pytest.raises(ValueError):
        piece.update(BlockResponse(1, 50, b"x" * 100))
    assert len(piece.buf) == 100


def test_queue_swap_remove_order():
    layout = make_layout(b"a" * 25, 10)
    queue = DownloadQueue()
    queue.add_pieces([0, 1, 2], layout)
    done = queue.apply_block(BlockResponse(0, 0, b"a" * 10))
    assert done is not None and done.index == 0
    assert [p.index for p in queue] == [2, 1]


def test_queue_ignores_unknown_piece():
    layout = make_layout(b"a" * 25, 10)
    queue = DownloadQueue()
    queue.add_pieces([1], layout)
    assert queue.apply_block(BlockResponse(0, 0, b"a" * 10)) is None
    assert len(queue) == 1


def test_piece_for_peer_respects_bitfield():
    layout = make_layout(b"a" * 25, 10)
    queue = DownloadQueue()
    queue.add_pieces([0, 1], layout)
    found = queue.piece_for_peer([False, True, False])
    assert found is not None and found.index == 1
    assert queue.piece_for_peer([]) is None


def test_open_failure(tmp_path):
    with pytest.raises(FileOpenError):
        PieceManager.open(tmp_path / "missing" / "out.bin", "ab")


def test_full_download_flow(tmp_path, data, layout):
    selector = PieceSelector([False, False])
    selector.add_peer(PEER)
    selector.add_peer_bitfield(PEER, [True, True])
    saved = []

    with PieceManager.open(tmp_path / "out.bin", "cafe") as manager:
        requests = manager.prepare_next_blocks(selector, 10, PEER, layout)
        assert requests is not None
        assert len(requests) == 3
        assert requests[-1].length == 100
        assert manager.prepare_next_blocks(selector, 10, PEER, layout) is None

        finished = []
        for req in requests:
            offset = req.index * layout.piece_length + req.begin
            chunk = data[offset : offset + req.length]
            result = manager.write_block(
                selector,
                BlockResponse(req.index, req.begin, chunk),
                layout,
                lambda h, bf: saved.append((h, bf)),
            )
            if result is not None:
                finished.append(result)

        assert sorted(finished) == [0, 1]
        assert selector.is_complete()
        assert saved[-1] == ("cafe", [True, True])

        block = manager.get_block(selector, BlockRequest(1, 0, 100), layout)
        assert block == BlockResponse(1, 0, data[2 * BLOCK_MAX :])

    assert (tmp_path / "out.bin").read_bytes() == data


def test_get_block_without_piece(tmp_path, layout):
    selector = PieceSelector([False, False])
    with PieceManager.open(tmp_path / "out.bin", "cafe") as manager:
        assert manager.get_block(selector, BlockRequest(0, 0, 10), layout) is None


def test_bad_hash_not_saved(tmp_path, layout):
    selector = PieceSelector([False, False])
    selector.add_peer(PEER)
    selector.add_peer_bitfield(PEER, [False, True])
    saved = []
    with PieceManager.open(tmp_path / "out.bin", "cafe") as manager:
        requests = manager.prepare_next_blocks(selector, 10, PEER, layout)
        assert requests == [BlockRequest(1, 0, 100)]
        index = manager.write_block(
            selector, BlockResponse(1, 0, b"\x00" * 100), layout,
            lambda h, bf: saved.append(bf),
        )
    assert index == 1
    assert saved == []
    assert selector.have == [False, False]


def test_unknown_peer_gets_nothing(tmp_path, layout):
    selector = PieceSelector([False, False])
    with PieceManager.open(tmp_path / "out.bin", "cafe") as manager:
        assert manager.prepare_next_blocks(selector, 5, PEER, layout) is None