"""Task store adapters for durable pending-task records.

Implementations support multiple backends:
- SQLite (zero-config, single-file)
- PostgreSQL (shared between processes)
"""
