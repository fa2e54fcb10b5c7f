"""Core services: the record store and the person list view state."""
