"""Event infrastructure."""
