"""Timed mini-events sharing one lifecycle."""
