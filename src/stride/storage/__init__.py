"""Object storage for user uploads."""
