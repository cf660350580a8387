"""
Gemini Package
==============

Request shaping and resilient dispatch for the generateContent API.

Main Components:
----------------
- translator.py: intent resolution and ProviderPayload construction
- dispatcher.py: outbound call with bounded exponential backoff
"""

from .dispatcher import GeminiDispatcher
from .translator import build_payload, parse_intent, translate

__all__ = ["GeminiDispatcher", "build_payload", "parse_intent", "translate"]
