"""Core domain foundations: settings, database, events and exceptions."""
