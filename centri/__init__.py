"""Centri co-pilot backend: integration sync and the updates feed."""
