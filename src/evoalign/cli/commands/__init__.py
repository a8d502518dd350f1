"""Implementations of the evoalign CLI commands."""
