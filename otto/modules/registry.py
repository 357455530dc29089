"""
Module Registry
===============

Thread-safe registry of feature modules. Readers only ever get a copy.
"""

import asyncio
import threading
from typing import Dict

from otto.modules.base import Module
from otto.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ModuleRegistry:
    """Keeps modules by name; the first registration of a name wins."""

    def __init__(self):
        self._modules: Dict[str, Module] = {}
        self._lock = threading.Lock()

    def register(self, module: Module) -> bool:
        """
        Register a module.

        Returns:
            False (and logs a warning) when the name is already taken
        """
        with self._lock:
            if module.name in self._modules:
                logger.warning("Module already registered", extra={"module_name": module.name})
                return False
            self._modules[module.name] = module

        logger.info("Module registered", extra={"module_name": module.name})
        return True

    def list(self) -> Dict[str, Module]:
        """Snapshot of the registered modules."""
        with self._lock:
            return dict(self._modules)

    def __len__(self) -> int:
        with self._lock:
            return len(self._modules)

    async def initialize_all(self) -> None:
        """Run every module's initialize hook in registration order."""
        for name, module in self.list().items():
            await module.initialize()
            logger.info("Module initialized", extra={"module_name": name})

    async def shutdown_all(self) -> None:
        """Shut every module down concurrently, logging failures."""
        modules = self.list()
        results = await asyncio.gather(
            *(module.shutdown() for module in modules.values()),
            return_exceptions=True
        )
        for name, result in zip(modules, results):
            if isinstance(result, Exception):
                logger.error(
                    "Module shutdown failed",
                    extra={"module_name": name, "error": str(result)}
                )
