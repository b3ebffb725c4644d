import os

from slowapi import Limiter
from slowapi.util import get_remote_address

EXPENSE_RATE_LIMIT = os.getenv("EXPENSE_RATE_LIMIT", "60/minute")
GROUP_RATE_LIMIT = os.getenv("GROUP_RATE_LIMIT", "10/hour")

limiter = Limiter(key_func=get_remote_address)
