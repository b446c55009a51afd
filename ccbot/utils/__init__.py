"""Utility functions for ccbot."""
