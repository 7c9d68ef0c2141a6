"""cellsync: keeps source lines aligned with generated notebook cells."""

__version__ = "0.1.0"
