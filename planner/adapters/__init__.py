"""External adapters for the Planner backend.

This package contains everything that talks to the outside world and
provides implementations of, or callers for, the core port interfaces.

Adapter Organization:

- store/: Entity persistence (SQLite, PostgreSQL) and schema migrations
- rpc/: Operation dispatcher and the HTTP transport host
- client/: Async client facade mirroring the service operations
"""
