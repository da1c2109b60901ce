"""Unit tests for the entity services and domain models.

Stores are replaced with the in-memory fake from tests/fakes/, so these
run without a database.
"""
