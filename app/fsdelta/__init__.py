"""fsdelta - track how a directory tree changes between scans."""

__version__ = "0.1.0"
