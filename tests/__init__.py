"""
Test suite for the widgetchat backend.

Covers:
- Routing policy (classifier, selector, tier registry)
- Context assembly and provider adapters (via FunctionModel, no network)
- Turn orchestration, fallback and usage gating against the in-memory store
- HTTP contract through FastAPI's TestClient
"""
