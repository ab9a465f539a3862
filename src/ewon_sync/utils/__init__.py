"""Utility helpers for ewon-sync."""
