"""Building directory: buildings, floors, doors, door types and coordinates."""
