"""API Resilience Implementations.

Contains the staged fetch pipeline used against the upstream API: response
classification, retries with progressive backoff, pagination and endpoint
variant fallback.
Bounded Context: API Resilience
"""
