"""Infrastructure Layer - persistence and background processing."""
