"""State of the torrent list shown to the user."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

_U8_MAX = 255

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
_SCHEMES_WITH_HOST = frozenset({"http", "https", "ws", "wss", "ftp"})


@dataclass
class PeerConnections:
    """Counts of inbound and outbound peer connections, each kept in 0..255."""

    inbound: int = 0
    outbound: int = 0

    def increase_inbound(self, delta: int) -> None:
        """Add ``delta`` (may be negative) to the inbound count, saturating."""
        self.inbound = _saturate(self.inbound + delta)

    def increase_outbound(self, delta: int) -> None:
        """Add ``delta`` (may be negative) to the outbound count, saturating."""
        self.outbound = _saturate(self.outbound + delta)


def _saturate(value: int) -> int:
    return max(0, min(_U8_MAX, value))


@dataclass
class TorrentInfo:
    """What the list shows about one torrent."""

    info_hash: bytes
    size: int
    """Size of the file(s) in bytes."""
    file_path: Path
    bitfield: list[bool]
    peer_connections: PeerConnections = field(default_factory=PeerConnections)
    is_paused: bool = False

    def num_pieces(self) -> int:
        return len(self.bitfield)


@dataclass(frozen=True)
class TorrentSource:
    """Where a new torrent comes from: a magnet link or a .torrent file."""

    magnet_link: str | None = None
    torrent_path: Path | None = None

    def __post_init__(self) -> None:
        if (self.magnet_link is None) == (self.torrent_path is None):
            raise ValueError("exactly one of magnet_link and torrent_path must be set")

    @property
    def is_magnet(self) -> bool:
        return self.magnet_link is not None


class TorrentParseError(ValueError):
    """The text is neither a URL nor the path of an existing file."""


def _is_absolute_url(value: str) -> bool:
    if not _SCHEME.match(value):
        return False
    parts = urlsplit(value)
    if parts.scheme.lower() in _SCHEMES_WITH_HOST:
        return bool(parts.hostname)
    return True


def parse_torrent_source(value: str) -> TorrentSource:
    """Interpret user input as a URL first, then as an existing file path."""
    if _is_absolute_url(value):
        return TorrentSource(magnet_link=value)
    if value and os.path.exists(value):
        return TorrentSource(torrent_path=Path(value))
    raise TorrentParseError(f"not a link or an existing file: {value!r}")


class TorrentListState:
    """Selection and scroll position of the torrent list."""

    def __init__(self, total_items: int) -> None:
        self.selected: int | None = 0 if total_items > 0 else None
        self.offset = 0
        self.total_items = total_items

    def next(self) -> None:
        """Select the following item, wrapping around."""
        if self.selected is not None:
            self.selected = (self.selected + 1) % self.total_items

    def previous(self) -> None:
        """Select the preceding item, wrapping around."""
        if self.selected is not None:
            self.selected = (self.selected + self.total_items - 1) % self.total_items

    def visible_range(self, max_visible: int) -> range:
        """Scroll so the selection is visible and return the visible indices."""
        self._scroll_to_selected(max_visible)
        return range(self.offset, min(self.offset + max_visible, self.total_items))

    def relative_selected_index(self) -> int:
        """Index of the selection within the visible window."""
        return (self.selected or 0) - self.offset

    def absolute_selected_index(self) -> int:
        """Index of the selection within the whole list."""
        return self.selected or 0

    def _scroll_to_selected(self, max_visible: int) -> None:
        selected = self.selected
        if selected is None:
            return
        if selected >= self.offset + max_visible and selected != self.total_items:
            self.offset = selected - max_visible + 1
        elif selected < self.offset:
            self.offset = selected


class Model:
    """The torrents on display together with the list state."""

    def __init__(self, torrents) -> None:
        self._torrents: list[TorrentInfo] = list(torrents)
        self.running = True
        self.list_state = TorrentListState(len(self._torrents))

    @property
    def torrents(self) -> tuple[TorrentInfo, ...]:
        return tuple(self._torrents)

    def push_torrent(self, info: TorrentInfo) -> None:
        """Append a torrent to the list."""
        self._torrents.append(info)
        self.list_state.total_items += 1

    def find_torrent(self, info_hash: bytes) -> TorrentInfo | None:
        """The torrent with ``info_hash``, or ``None``."""
        return next((t for t in self._torrents if t.info_hash == info_hash), None)