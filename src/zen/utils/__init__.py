"""Utility modules for zen."""
