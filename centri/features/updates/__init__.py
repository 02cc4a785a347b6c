"""
Updates feed feature package.

Collectors turn provider activity and local reminders into update
candidates; the aggregator merges them into update_items and notifies
about new high-severity items.
"""
