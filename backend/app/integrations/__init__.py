"""External service integrations for the SkillSwap platform."""

from .hundredms_client import FakeHundredMsClient, HundredMsClient, HundredMsError

__all__ = ["FakeHundredMsClient", "HundredMsClient", "HundredMsError"]
