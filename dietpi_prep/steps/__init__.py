"""The ordered PREP pipeline steps."""
