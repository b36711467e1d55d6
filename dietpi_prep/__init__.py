"""Prepare a Debian-family installation to become a DietPi base image."""

from .__version__ import __version__


__all__ = ["__version__"]
