"""Teddy command-line interface."""
