"""
Mode orchestration package.

Public API:
- ModeController: start/stop broadcasting, start/stop listening, select role
- ControllerState: snapshot consumed by the presentation layer
- Role
"""
from .controller import ModeController, ControllerState, Role, ModeStateException

__all__ = ["ModeController", "ControllerState", "Role", "ModeStateException"]
