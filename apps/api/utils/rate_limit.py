"""Shared rate limiter for public write endpoints"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import get_settings

limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)

BOOKING_LIMIT = "10/minute"
PAYMENT_LIMIT = "10/minute"
REVIEW_LIMIT = "5/minute"
