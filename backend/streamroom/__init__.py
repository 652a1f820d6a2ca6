"""Listening-room backend: stream validation, points and mini-events."""
