"""Tests for the freight-watch command line tool."""
