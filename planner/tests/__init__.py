"""Test suite for the Planner backend.

Organized into three categories:

1. core/: Unit tests for core domain logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - SQLite store against a temporary file, PostgreSQL with a mocked pool
   - RPC server and client end to end over loopback

3. fakes/: Port implementations for testing
   - In-memory EntityStorePort and a deterministic clock
"""
