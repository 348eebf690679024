"""
Function registry.

Process-wide mapping from generated function id to the image built for it.
Empty at startup, written once per successful load, never persisted.
"""

import logging
import threading
import uuid
from typing import Dict, Optional

from ..core.exceptions import FunctionNotFoundError
from ..models.function import FunctionRecord

logger = logging.getLogger("gateway.function_registry")


class FunctionRegistry:
    def __init__(self):
        self._registry: Dict[str, FunctionRecord] = {}
        # Loads run on the event loop and tests drive it from threads; guard both.
        self._lock = threading.Lock()

    def register(
        self, image_id: str, language: Optional[str] = None, handler: Optional[str] = None
    ) -> str:
        """
        Bind a freshly generated function id to image_id.

        Returns:
            The new function id (UUID4 string)
        """
        if not image_id:
            raise ValueError("image_id must not be empty")

        with self._lock:
            function_id = str(uuid.uuid4())
            while function_id in self._registry:
                function_id = str(uuid.uuid4())
            self._registry[function_id] = FunctionRecord(
                function_id=function_id, image_id=image_id, language=language, handler=handler
            )

        logger.info(
            f"Registered function {function_id}",
            extra={"function_id": function_id, "image_id": image_id, "language": language},
        )
        return function_id

    def get(self, function_id: str) -> FunctionRecord:
        """
        Get the record of a registered function.

        Raises:
            FunctionNotFoundError: function_id was never registered
        """
        with self._lock:
            record = self._registry.get(function_id)
        if record is None:
            raise FunctionNotFoundError(function_id)
        return record

    def lookup(self, function_id: str) -> str:
        """
        Get the image id bound to function_id.

        Raises:
            FunctionNotFoundError: function_id was never registered
        """
        return self.get(function_id).image_id

    def __contains__(self, function_id: object) -> bool:
        with self._lock:
            return function_id in self._registry

    def __len__(self) -> int:
        with self._lock:
            return len(self._registry)
