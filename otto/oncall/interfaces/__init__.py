"""
OnCall Interfaces Layer
=======================

Module adapter plugging the on-call service into the webhook dispatcher.
"""

from otto.oncall.interfaces.module import OnCallModule

__all__ = ["OnCallModule"]
