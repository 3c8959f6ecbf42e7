"""External adapters for the Cuckoo scheduling system.

This package contains all external dependencies (SQLite, PostgreSQL,
AviationStack, HTTP relays, etc.) and provides implementations of the
core port interfaces.

Adapter Organization:

- store/: Adapters for pending-task persistence (SQLite, PostgreSQL)
- notification/: Adapters for delivering messages (stdout, webhook relay)
- upstream/: Adapters for querying external state (AviationStack)
- scheduler/: Driver loop for recurring pollables
- cli/: Command-line interface commands
"""
