"""Rich console rendering for the CLI."""
