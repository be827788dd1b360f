"""String constants."""
