"""Lending Library: loan lifecycle, inventory and notifications for a library backend."""

__version__ = "0.1.0"
