"""Hearth command-line interface."""
