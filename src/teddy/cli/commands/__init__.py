"""Subcommands of the teddy CLI."""
