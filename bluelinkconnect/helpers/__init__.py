"""Helper functions."""
