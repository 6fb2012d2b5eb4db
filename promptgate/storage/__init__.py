"""SQLite-backed storage for usage, billing and the model catalog."""
