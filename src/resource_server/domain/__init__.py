"""Domain layer: entities, value objects and the query/mutation engines."""
