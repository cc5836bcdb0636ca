"""Read API over cached snapshots and stored articles."""
