"""Generative-model fallback for issues no rule recognises."""
