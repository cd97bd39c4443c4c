"""Domain Layer - Entities, errors and repository interfaces."""
