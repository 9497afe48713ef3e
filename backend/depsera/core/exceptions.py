"""Application-level exceptions."""

import math
from typing import Optional


class DepseraException(Exception):
    """Base exception for Depsera."""

    def __init__(self, message: Optional[str] = None):
        """Create a new DepseraException."""
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class NotFoundException(DepseraException):
    """Raised when a requested object does not exist."""

    pass


class ManualSyncCooldownException(DepseraException):
    """Raised when a manual sync is requested before the cooldown has elapsed."""

    def __init__(self, retry_after: float):
        """Create a new ManualSyncCooldownException.

        Args:
            retry_after: Seconds until another manual sync is allowed
        """
        self.retry_after = retry_after
        super().__init__(f"Manual sync cooldown active, retry in {math.ceil(retry_after)}s")
