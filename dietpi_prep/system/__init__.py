"""Thin wrappers around the system tools PREP drives."""
