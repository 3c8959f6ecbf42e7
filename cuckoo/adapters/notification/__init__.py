"""Notification adapters for delivering rendered messages.

Implementations support multiple output channels:
- Stdout (terminal line output)
- Webhook (JSON POST to a chat relay)
"""
