"""Fake implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeEntityStorePort: In-memory entity persistence with failure injection
- TickingClock: Deterministic, strictly increasing timestamps
"""

from .clock import TickingClock
from .store import FakeEntityStorePort

__all__ = [
    "FakeEntityStorePort",
    "TickingClock",
]
