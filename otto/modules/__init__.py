"""
Modules
=======

Feature modules and the registry the webhook dispatcher fans events out to.
"""

from otto.modules.base import Module
from otto.modules.registry import ModuleRegistry

__all__ = ["Module", "ModuleRegistry"]
