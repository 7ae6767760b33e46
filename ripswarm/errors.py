"""Errors raised while managing the peers and pieces of a torrent."""

from __future__ import annotations

import os


class PeerManagerError(Exception):
    """Base class for every failure of the peer manager."""


class FileOpenError(PeerManagerError):
    """The output file of a torrent could not be opened."""

    def __init__(self, path: str | os.PathLike[str], reason: object) -> None:
        self.path = os.fspath(path)
        self.reason = reason
        super().__init__(
            f"Failed to open the file at the path `{self.path}` "
            f"with the error: `{reason}`"
        )


class NoFileNameError(PeerManagerError):
    """No file name was given for a download."""

    def __init__(self) -> None:
        super().__init__("No file name provided")