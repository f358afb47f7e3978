"""Caching Service Implementation.

Provides the concrete CacheService with TTL freshness, a stale-but-usable
window bounded by an absolute max age, and pluggable storage backends
(in-memory, pickle file).
Bounded Context: Cache Management
"""
