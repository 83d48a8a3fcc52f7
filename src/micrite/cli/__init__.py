"""Command-line interface for micrite."""
