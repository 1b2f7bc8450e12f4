"""Industry → MailerLite group resolution."""

import logging
import re
from types import MappingProxyType
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


def normalize_industry(industry: str) -> str:
    """``"Real estate"`` → ``"REAL_ESTATE"``."""
    return _NON_ALNUM.sub("_", (industry or "").upper()).strip("_")


class GroupResolver:
    """Resolves an industry to a group id.

    Order: industry mapping, then the default group, then None. None means
    the subscriber is enrolled without a group.
    """

    def __init__(self, mapping: Mapping[str, str], default_group: str = ""):
        self._mapping = MappingProxyType(
            {normalize_industry(k): v for k, v in mapping.items() if v}
        )
        self.default_group = default_group or None

    @property
    def mapping(self) -> Mapping[str, str]:
        return self._mapping

    def resolve(self, industry: str) -> Optional[str]:
        token = normalize_industry(industry)
        group = self._mapping.get(token)
        if group:
            return group
        if self.default_group:
            logger.debug("No group for industry %s; using default", token)
            return self.default_group
        logger.warning("No group configured for industry %s; enrolling without a group", token or "<empty>")
        return None
