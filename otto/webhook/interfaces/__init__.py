"""
Webhook Interfaces Layer
========================

HTTP entry point for GitHub deliveries.
"""

from otto.webhook.interfaces.controllers import get_dispatcher, get_webhook_secret, router

__all__ = ["router", "get_dispatcher", "get_webhook_secret"]
