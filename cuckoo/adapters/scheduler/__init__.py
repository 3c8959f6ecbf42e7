"""Scheduler adapters for driving recurring pollables.

Implementations support multiple scheduling strategies:
- Daemon (asyncio event loop, one fixed-grid loop per pollable)
- Single cycle (poll everything once and exit)
"""
