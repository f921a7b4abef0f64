"""Core engine — models, services, persistence."""
