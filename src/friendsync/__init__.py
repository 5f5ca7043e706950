"""friendsync - Offline-tolerant delivery of friend mutations."""

__version__ = "0.1.0"
