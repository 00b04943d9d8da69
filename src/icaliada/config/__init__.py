"""Configuration loading, environment overlay, resolution and logging setup."""
