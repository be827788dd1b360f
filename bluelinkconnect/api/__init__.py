"""BlueLink cloud API layer."""
