"""
News Proxy Application
======================

Server-side proxy that forwards news fetch and summarize requests to the
Gemini generateContent API with a private credential injected.

Modules:
    - config:   environment-driven settings
    - handler:  ``handle_invocation`` entry point
    - gemini:   request translator and resilient dispatcher
    - proxy:    FastAPI routes
    - main:     application factory
"""

from .handler import handle_invocation
from .models import InvocationRequest, NormalizedResult

__all__ = ["handle_invocation", "InvocationRequest", "NormalizedResult"]
