"""Infrastructure layer: persistence and demo data."""
