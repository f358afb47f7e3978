"""Circle Admin API client: credentials, headers and the fetch orchestration."""
