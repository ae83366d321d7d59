"""Helpers around the registration core."""
