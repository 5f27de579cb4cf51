"""Moderation surface: review rendering, context recovery and action dispatch."""
