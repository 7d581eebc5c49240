"""
Browser control: process launch, debug endpoint resolution, CDP attachment.
"""

from .controller import SessionController
from .endpoint import resolve_endpoint
from .launcher import ProcessLauncher

__all__ = ["ProcessLauncher", "SessionController", "resolve_endpoint"]
