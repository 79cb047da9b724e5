"""
Ariya Backend — Application Package
=====================================

Request pipeline for the Ariya event marketplace API.

Architecture Note:
    ┌─────────────────────────────────────┐
    │     Middleware (edge concerns)      │  ← CORS, versioning, request context
    ├─────────────────────────────────────┤
    │   Routes + Dependencies (pipeline)  │  ← rate limit → validate → auth
    ├─────────────────────────────────────┤
    │       Services (business rules)     │  ← auth, moderation, rate limiter
    ├─────────────────────────────────────┤
    │       Models & Schemas (data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │       Database (persistence)        │  ← async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
