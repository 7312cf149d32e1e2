"""Recall command-line interface."""
