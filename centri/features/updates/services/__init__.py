"""
Service layer for the updates feature.
"""
