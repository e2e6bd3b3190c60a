"""Application services over the matching core."""

from .matches import DIRECT_APPLICATION_DETAIL, MatchListener, MatchService

__all__ = ["DIRECT_APPLICATION_DETAIL", "MatchListener", "MatchService"]
