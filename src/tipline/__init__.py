"""Anonymous/attributed submission intake and moderation bot."""

from .constants import VERSION

__version__ = VERSION
