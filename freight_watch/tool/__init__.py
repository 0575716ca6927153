"""Command line tool for freight-watch."""
