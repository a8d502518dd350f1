"""Command-line interface for evoalign."""
