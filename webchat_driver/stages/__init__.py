"""
Page-level stages of a session, in the order the driver runs them:
challenge, auth, inject, submit, collect.
"""

from .auth import AuthDetector
from .challenge import ChallengeDetector, ChallengeMarkers
from .collector import ResponseCollector, StabilityTracker
from .injector import InputInjector, PlaywrightInputSurface
from .submit import SubmissionTrigger

__all__ = [
    "AuthDetector",
    "ChallengeDetector",
    "ChallengeMarkers",
    "InputInjector",
    "PlaywrightInputSurface",
    "ResponseCollector",
    "StabilityTracker",
    "SubmissionTrigger",
]
