"""mediaqueue - offline upload queue and synchronization for media uploads."""

__version__ = "0.1.0"
