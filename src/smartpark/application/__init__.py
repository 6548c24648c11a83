"""Application layer: booking engines and their supporting services."""
