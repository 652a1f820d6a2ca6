"""Listening sessions, stream validation and the stream ledger."""
