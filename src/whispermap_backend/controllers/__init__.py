"""
Controllers for the WhisperMap API.

- whisper_controller: discovery, creation, replies and audio serving
- system_controller: health and maintenance operations
"""

from . import system_controller, whisper_controller

__all__ = ["system_controller", "whisper_controller"]
