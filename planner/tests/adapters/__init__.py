"""Integration tests for the store, RPC and client adapters.

SQLite and transport tests run against real files and sockets; the
PostgreSQL tests mock asyncpg unless a live server is configured.
"""
