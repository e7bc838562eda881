"""Utilities for MoodSync."""
