"""
Shared error types and the downstream subscriber abstraction.
Every component of the relay raises and catches these.
"""

from abc import ABC, abstractmethod
from typing import Optional


class RelayError(Exception):
    """Base relay error"""
    pass


class FrameDecodeError(RelayError):
    """A single upstream record could not be decoded"""

    def __init__(self, stage: str, message: str, topic: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.topic = topic


class ConfigurationError(RelayError, ValueError):
    """Missing or invalid relay configuration"""
    pass


class Subscriber(ABC):
    """
    A downstream connection that receives broadcast envelopes.

    Implementations must never block the caller of offer(): the
    broadcaster calls it from the upstream message pump.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the subscriber can still accept messages."""
        pass

    @abstractmethod
    def offer(self, message: str) -> bool:
        """
        Hand a serialized message to the subscriber without waiting.

        Returns:
            bool: True if accepted, False if dropped
        """
        pass
