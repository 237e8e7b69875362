# tanapark/utils/phone.py
"""
Ethiopian phone number normalisation.
The same subscriber number arrives as 0911223344, 911223344,
251911223344 or +251911223344 depending on who typed it.
"""

import re

from tanapark.config import settings

_NON_DIGITS = re.compile(r"\D")


def subscriber_digits(phone: str, country_code: str = None) -> str:
    """Strip formatting, country code and trunk zero; returns the national significant number."""
    country_code = country_code or settings.PHONE_COUNTRY_CODE
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        raise ValueError(f"Invalid phone number: {phone!r}")
    if digits.startswith(country_code) and len(digits) > len(country_code) + 7:
        digits = digits[len(country_code):]
    return digits.lstrip("0")


def to_local(phone: str, country_code: str = None) -> str:
    """0XXXXXXXXX"""
    return "0" + subscriber_digits(phone, country_code)


def to_international(phone: str, country_code: str = None) -> str:
    """+251XXXXXXXXX"""
    country_code = country_code or settings.PHONE_COUNTRY_CODE
    return f"+{country_code}{subscriber_digits(phone, country_code)}"
