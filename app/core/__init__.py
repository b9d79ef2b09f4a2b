"""Game core primitives (event bus, errors, and the injected context).

Kept free of FastAPI concerns so it can be reused by API routes, scripts, and tests.
"""
