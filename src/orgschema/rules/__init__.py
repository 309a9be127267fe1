"""Visibility conditions and validation rules."""
