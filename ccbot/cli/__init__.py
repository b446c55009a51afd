"""CLI module for ccbot."""
