"""Page layout validation and rendering."""

from orgschema.layout.composer import effective_layout, resolve, validate_layout, visible_tree

__all__ = ["effective_layout", "resolve", "validate_layout", "visible_tree"]
