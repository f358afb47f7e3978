"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the Circle HTTP API, the
local cache file, the terminal) by implementing the interfaces defined in
the domain layer.
"""
