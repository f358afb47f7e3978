"""Domain Events.

Lightweight records describing what happened during upstream API calls.
"""
