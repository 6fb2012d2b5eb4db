"""Model definition loading and runtime settings."""
