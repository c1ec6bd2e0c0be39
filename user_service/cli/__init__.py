"""Command line interface for user-service management commands."""
