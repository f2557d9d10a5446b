"""whatdo: a git-based tracker for what to do next."""

from whatdo.config import VERSION

__version__ = VERSION
