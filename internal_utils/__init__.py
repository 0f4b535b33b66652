"""
internal_utils: shared building blocks for internal Python services.

Subpackages:
- observability: structured logging and OpenTelemetry setup
- db: PostgreSQL pooling on asyncpg
- validation: pydantic validation helpers
"""

__version__ = "0.1.0"
