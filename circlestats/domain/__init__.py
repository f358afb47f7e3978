"""Domain Layer: value objects, result types, error taxonomy and ports.

Nothing in here performs I/O. Infrastructure adapters implement the
interfaces declared in `domain.interfaces`.
"""
