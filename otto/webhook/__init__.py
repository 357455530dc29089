"""
Webhook Gateway
===============

Receives signed GitHub events and fans them out to the registered modules.

Layers:
- application: event models, signature verification, dispatcher
- interfaces: FastAPI route
"""
