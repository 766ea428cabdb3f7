"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — JSON / console logging with request context
    middleware      — request id + timing
    errors          — exception hierarchy & handlers
    health          — health check aggregation
    database        — async PostgreSQL connection
"""
