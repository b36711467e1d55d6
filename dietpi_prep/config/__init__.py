"""Configuration constants and environment inputs."""
