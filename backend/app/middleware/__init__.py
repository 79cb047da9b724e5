"""
Ariya Backend — Middleware Package
====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [GZip] → [API version rewrite] → [Request context]
            → [Access logging] → [Regional headers] → [Rate limit headers]
            → Route (rate_limit → validate → auth → service → envelope)

    Why this order:
    1. CORS answers preflight requests before anything else runs
    2. The version rewrite must happen before routing and before the
       request context records the path
    3. Access logging sits inside the request context so every line carries
       the request id, and outside the route so it sees the final status
    4. Header decorators run last on the way out of the route
"""
