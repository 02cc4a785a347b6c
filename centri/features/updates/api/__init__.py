"""HTTP routes for the updates feed."""
