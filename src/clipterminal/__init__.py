"""Clipboard history with link previews."""

__version__ = "0.1.0"
