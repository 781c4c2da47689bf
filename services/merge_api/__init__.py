"""Merge service - Audio/video merge API.

FastAPI service that merges an uploaded audio track into a fixed base
video with ffmpeg and returns the WebM result.
"""

__all__: list[str] = []
