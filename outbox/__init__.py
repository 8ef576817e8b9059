"""Outbound WhatsApp delivery outbox: queue, retry engine and health monitoring."""
