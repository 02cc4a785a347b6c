"""HTTP routes for integrations and sync."""
