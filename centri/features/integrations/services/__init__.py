"""
Service layer for the integrations feature.
"""
