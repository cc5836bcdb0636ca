"""Push notification delivery for newly stored articles."""
