"""
FastAPI Todo Backend package.

The ASGI application lives in ``src.api.main`` (``app`` for servers,
``create_app(settings)`` for tests and embedding).
"""
