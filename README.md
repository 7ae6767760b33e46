# ripswarm

ripswarm does the bookkeeping of a BitTorrent download:

- It chooses which piece to ask a peer for next, rarest first.
- It splits pieces into block requests.
- It checks each complete piece against its SHA-1 hash.
- It writes verified pieces into the output file and reads blocks back out to serve other peers.

It also has a small in-memory model of a torrent list, with selection and scrolling. This is the
state a front end would draw from.

ripswarm does no networking. You give it peer bitfields, `have` announcements and received
blocks, and it tells you what to request and what it stored.

## Install

```
pip install .
pip install ".[test]"   # adds pytest for running the tests
```

## Modules

### `ripswarm.piece_selector`

`PieceSelector(have)` chooses pieces in order of rarity. When two pieces are equally rare, the
lower index comes first. It takes our own bitfield.

Recording what peers have:

- `add_peer(peer_id)`
- `add_peer_bitfield(peer_id, bitfield)`. Bitfields from peers that were not added first are ignored.
- `update_from_peer_have(peer_id, index)`
- `remove_peer(peer_id)`

Choosing pieces:

- `select_pieces_for_peer(peer_id, count)` returns piece indices the peer has and marks them in flight.
- It returns `None` when the peer is unknown or there is nothing to pick.

Other members:

- `update_from_self_have(bitfield)` sets our bitfield once the number of pieces becomes known.
- `peer_has(peer_id)` returns the bitfield known for a peer.
- `mark_have(index)` records a piece we now have.
- `is_complete()` tells whether we have every piece.
- The `have` property is a copy of our bitfield.

### `ripswarm.pieces`

Data types:

- `TorrentLayout(piece_length, length, piece_hashes)` gives the size of each piece. Only the last piece may be shorter.
- `BlockRequest` and `BlockResponse` are the block-level requests and the data that answers them.
- `block_length(n_blocks, piece_size, block_index)` gives the size of a single block. Blocks are at most `BLOCK_MAX` (16 KiB).

`BlockState` and `PieceState` track how a piece is downloading:

- A block that was requested may be requested again after `TIMEOUT_FOR_REQ` seconds.
- `PieceState.prepare_requests(n)` returns requests for blocks that have not been requested yet.
- `PieceState.update(response)` stores a block. It raises `ValueError` if the block does not fit the piece.
- `PieceState.check_hash(layout)` checks the piece against its SHA-1 hash.

`DownloadQueue` holds the pieces in flight:

- `piece_for_peer(peer_has)` returns a queued piece the peer has that still has blocks to request.
- `add_pieces(pieces, layout)` adds pieces to the queue.
- `apply_block(response)` stores a block. When that block completes its piece, it removes the piece from the queue and returns it.

`PieceManager` owns the output file:

- `PieceManager.open(path, info_hash_hex)` opens the file, creating it if needed. It can be used as a context manager.
- `prepare_next_blocks(selector, n, peer_id, layout)` returns up to `n` block requests for a peer. When the queue has no suitable piece, it asks the selector for up to `MAX_PIECES_IN_PARALLEL` new pieces.
- `write_block(selector, response, layout, save_bitfield)` stores a block and returns the piece index once the piece is complete.
  - If the hash matches, the piece is written to the file.
  - The new bitfield is passed to `save_bitfield(info_hash_hex, bitfield)`, and only then recorded in the selector.
  - A piece whose hash does not match is discarded, but its index is still returned.
- `get_block(selector, request, layout)` reads a block of a piece we have. It returns `None` if we do not have the piece or the read falls short.

### `ripswarm.model`

- `Model(torrents)` holds a list of `TorrentInfo` entries, a `running` flag and a `TorrentListState`.
  - `push_torrent(info)` adds an entry.
  - `find_torrent(info_hash)` looks one up.
  - The `torrents` property gives the entries.
- `TorrentInfo` holds the info hash, the size in bytes, the file path, the bitfield, the pause flag and a `PeerConnections` counter.
- `PeerConnections` counts inbound and outbound connections. Each count is kept in the range 0 to 255.
- `TorrentListState` keeps track of the selection in the list.
  - `next()` and `previous()` move the selection and wrap around.
  - `visible_range(max_visible)` scrolls so the selection stays in view.
  - `relative_selected_index()` and `absolute_selected_index()` give the position of the selection.
- `parse_torrent_source(value)` reads user input.
  - An absolute URL becomes a `TorrentSource` with `magnet_link` set.
  - The path of an existing file becomes one with `torrent_path` set.
  - Anything else raises `TorrentParseError`.

### `ripswarm.display`

- `torrent_ratio(bitfield)` is the fraction of pieces we have. It is NaN when there are no pieces.
- `value_to_color(value)` maps 0.0–1.0 to an RGB tuple: red at 0.0, yellow at 0.5 and green at 1.0.

### `ripswarm.errors`

`PeerManagerError` is the base class. `FileOpenError` and `NoFileNameError` derive from it.

## Example

```python
import hashlib
import os
import tempfile

from ripswarm.piece_selector import PieceSelector
from ripswarm.pieces import BlockResponse, PieceManager, TorrentLayout

data = b"x" * 20000
layout = TorrentLayout(
    piece_length=32768,
    length=len(data),
    piece_hashes=(hashlib.sha1(data).digest(),),
)

peer = b"-XX0001-000000000000"
selector = PieceSelector([False])
selector.add_peer(peer)
selector.add_peer_bitfield(peer, [True])

saved = {}
path = os.path.join(tempfile.mkdtemp(), "out.bin")
with PieceManager.open(path, "00" * 20) as manager:
    requests = manager.prepare_next_blocks(selector, 10, peer, layout)
    for request in requests:  # two blocks: 16384 and 3616 bytes
        chunk = data[request.begin:request.begin + request.length]
        done = manager.write_block(
            selector,
            BlockResponse(request.index, request.begin, chunk),
            layout,
            lambda info_hash, bitfield: saved.update({info_hash: bitfield}),
        )

print(done, selector.is_complete())  # 0 True
```

## What it does not do

ripswarm has none of the following:

- No networking: no tracker requests, peer connections or wire protocol.
- No torrent-file or magnet-link parsing beyond `parse_torrent_source`.
- No database. Saving bitfields is left to the `save_bitfield` callback.
- No terminal screen and no command-line program.