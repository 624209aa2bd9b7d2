"""Rate limiter instance for SlowAPI.

Shared so both main (app.state.limiter) and route modules can use the
same instance without circular imports. Central limit strings and
decorators keep rate limits DRY.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Single source of truth for rate limit strings and decorators.
# A warm reads whole reporting tables; keep operators from stacking them up.
WARM_LIMIT = "6/minute"
ADMIN_READ_LIMIT = "60/minute"
INVALIDATE_LIMIT = "30/minute"

limit_warm = limiter.limit(WARM_LIMIT)
limit_admin_read = limiter.limit(ADMIN_READ_LIMIT)
limit_invalidate = limiter.limit(INVALIDATE_LIMIT)
