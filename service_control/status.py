"""Service status, capability and blocking-mode types."""

from enum import Enum, Flag


class Status(Enum):
    """Run state of a service, recomputed on every query."""
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    UNKNOWN = "UNKNOWN"


class BlockMode(Enum):
    """Whether start/stop only return once their effect is observable."""
    BLOCKING = "BLOCKING"
    NON_BLOCKING = "NON_BLOCKING"
    UNDETERMINED = "UNDETERMINED"


class SupportFlag(Flag):
    """Operations a backend is able to perform."""
    NONE = 0
    STATUS = 1
    START = 2
    STOP = 4
    SET_ENABLED = 8

    @classmethod
    def all(cls) -> 'SupportFlag':
        return cls.STATUS | cls.START | cls.STOP | cls.SET_ENABLED
