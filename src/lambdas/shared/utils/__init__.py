"""Utility functions for shared Lambda code."""

from src.lambdas.shared.utils.clock import Clock, utc_now
from src.lambdas.shared.utils.cookie_helpers import make_set_cookie, parse_cookies

__all__ = [
    "Clock",
    "make_set_cookie",
    "parse_cookies",
    "utc_now",
]
