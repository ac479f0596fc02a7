"""Domain layer: entities, exceptions and directory services."""
