"""Training analytics: streaks, achievements, recommendations."""
