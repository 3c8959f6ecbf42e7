"""Command-line interface adapters.

Provides interactive commands for scheduling reminders and tracking
flights against the core's driving ports.
"""
