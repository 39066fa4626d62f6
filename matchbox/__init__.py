"""Matchbox — swipe matching, conversations and live notifications."""

__version__ = "1.0.0"
