"""Users, rooms, room participants and daily check-ins."""
