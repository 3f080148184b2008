"""Command-line interface for swarmkeeper."""
