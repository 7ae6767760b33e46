"""Piece selection, block scheduling and download bookkeeping for a BitTorrent client."""

__version__ = "0.1.0"
__all__ = ["display", "errors", "model", "piece_selector", "pieces"]