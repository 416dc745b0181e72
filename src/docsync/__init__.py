"""docsync - document replication to a remote rsync node with a cached read path."""

__version__ = "0.1.0"
