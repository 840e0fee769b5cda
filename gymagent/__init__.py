"""Retention agent orchestration core for gym operators."""
