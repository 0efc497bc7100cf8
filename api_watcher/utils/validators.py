"""
============================================================================
API WATCHER - VALIDATORS UTILITY
============================================================================
Checks applied to user-supplied delivery targets before anything is sent
to them.
============================================================================
"""

from typing import Optional
from urllib.parse import urlparse

import validators as external_validators

from api_watcher.utils.logger import get_logger


logger = get_logger(__name__)


class TargetValidator:
    """Validation of notification destinations."""

    ALLOWED_SCHEMES = ("http", "https")

    @staticmethod
    def is_valid_url(url: Optional[str]) -> bool:
        """
        Check that *url* is an absolute http(s) URL.

        Hosts without a dot (``localhost``, service names) are accepted.
        """
        if not url:
            return False

        if urlparse(url).scheme not in TargetValidator.ALLOWED_SCHEMES:
            return False

        result = external_validators.url(url, simple_host=True)
        if result is not True:
            logger.debug(f"URL rejected: {url}")
            return False
        return True

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return external_validators.email(email) is True
