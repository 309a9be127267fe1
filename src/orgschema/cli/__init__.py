"""Command line interface for orgschema."""
