"""Subtitle reading and dialogue files."""
