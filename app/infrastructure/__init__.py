"""Infrastructure layer: Redis store, SQL persistence, default collaborators."""
