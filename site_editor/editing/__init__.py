"""Editing package

Replace-and-commit core: path resolution, CSS image references, page model,
surface scanning, capture, contents API client and the editor flow.
"""

from .config import EditorConfig, load_editor_config
from .editor import ImageEditor, ReplacePublisher
from .paths import PathResolver, resolve_repo_path
from .session import Credentials

__all__ = [
    "Credentials",
    "EditorConfig",
    "ImageEditor",
    "PathResolver",
    "ReplacePublisher",
    "load_editor_config",
    "resolve_repo_path",
]
