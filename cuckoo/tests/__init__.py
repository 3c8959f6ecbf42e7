"""Test suite for the Cuckoo scheduling system.

Organized into three categories:

1. core/: Unit tests for core scheduling logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - Tests against temporary databases and mocked HTTP transports
   - Validates adapter behavior and error handling

3. fakes/: Port implementations for testing
   - In-memory implementations of TaskStorePort, NotifierPort, etc.
   - Used by core unit tests
"""
