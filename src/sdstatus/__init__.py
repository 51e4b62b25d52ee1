"""Derive a simple health summary from the systemd manager over D-Bus."""

__version__ = "0.1.0"
