"""Domain layer: entities, value objects, aggregates and strategies."""
