"""Room broadcast events and their fan-out."""
