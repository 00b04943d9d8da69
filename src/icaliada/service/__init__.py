"""Listener lifecycle and connection handling."""
