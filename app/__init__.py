"""Merge service - Core application modules.

Provides:
- Environment-driven configuration
- Pydantic response models
- Core utilities: paths, temp_files, audio_meta
"""

__version__ = "0.1.0"
