"""Statistical analysis for validating control and breach relationships."""
