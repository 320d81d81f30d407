"""
Compyy Backend — Pydantic Request/Response Schemas
====================================================

API contracts kept separate from the ORM models: they decide exactly which
fields leave the service (never password hashes or token digests) and
drive the OpenAPI documentation.
"""
