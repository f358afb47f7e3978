"""Domain models: community records, statistics, errors and fetch results."""
