"""Command line interface for densefit."""
