"""
freight-watch keeps a local, per-project cache of Stage, Warehouse and Freight
resources consistent with a server-pushed stream of watch events, and
maintains derived views computed from that stream.
"""

__all__ = [
    "manifest",
    "store",
    "watch",
    "sync",
    "config",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
