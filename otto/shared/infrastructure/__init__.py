"""
Shared Infrastructure
=====================

Logging setup and helpers used across the application.
"""
