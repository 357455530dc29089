"""
Shared Kernel Module
====================

Generic infrastructure shared by the webhook gateway and every module:
structured logging and HTTP middleware.

DO NOT add on-call business logic to the shared kernel.
"""
