"""
Push channel.

Components:
- models.py: event kinds, payload shape checks and typed payloads
- sse.py: text/event-stream decoding and the httpx transport
- hub.py: client-side EventHub (single connection, listeners, reconnect backoff)
- publisher.py: server-side progress publishing
"""
