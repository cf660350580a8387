"""
Proxy Package
=============

This package exposes the invocation entry point over HTTP so clients can
reach the upstream model without ever holding the API key.

Main Components:
----------------
- routes.py: FastAPI router with the get-news endpoints

Usage:
------
    from newsproxy.app.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
