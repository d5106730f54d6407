"""Phone number normalization to the provider's MSISDN format."""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D+")

# Bare subscriber numbers (no trunk prefix, no country code) are 9 digits long.
SUBSCRIBER_DIGITS = 9


def normalize_phone(value: Optional[str], default_country_code: str) -> str:
    """
    Convert a user-entered phone number into a canonical MSISDN.

    "0788123456", "788123456", "+250 788 123 456" and "250788123456" all
    become "250788123456" for country code "250". Anything else is returned
    as its bare digits; the provider rejects malformed numbers itself.
    Never raises.
    """
    if not value:
        return ""

    digits = _NON_DIGITS.sub("", str(value))
    cc = (default_country_code or "").lstrip("+")

    if not digits:
        return ""
    if digits.startswith(cc):
        return digits
    if digits.startswith("0"):
        return cc + digits[1:]
    if len(digits) == SUBSCRIBER_DIGITS:
        return cc + digits
    return digits
