"""RPC transport adapters.

Exposes the entity services as request/response operations
(CreateArea, GetArea, ListAreas, UpdateArea, DeleteArea, and the same
for projects and tasks) over JSON-over-HTTP.
"""
