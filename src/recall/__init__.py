"""Recall — personal knowledge contexts with grounded chat."""
