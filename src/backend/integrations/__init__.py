"""
Integrations Module - Clients for External Systems
==================================================

Modules:
    push_client: Reconnecting httpx consumer for the session and
        notification push streams
"""
