"""Core utilities: errors, logging."""
