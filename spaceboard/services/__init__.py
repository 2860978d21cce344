"""Cache orchestration, rate limiting and the space data service."""
