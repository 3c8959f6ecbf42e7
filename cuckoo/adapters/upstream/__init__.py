"""Upstream status source adapters.

Implementations query external systems for the current state of
tracked entities:
- AviationStack (flight status)
"""
