"""Recall read path: similarity, budgeting, prompts, streaming, orchestration."""
