"""Version control hosts."""

from .base import VersionControlHost
from .github import GitHubHost

__all__ = ["VersionControlHost", "GitHubHost"]
