"""Core Layer: aggregation, the stats service and command orchestration.

Depends on the domain layer and on injected infrastructure services.
"""
