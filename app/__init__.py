"""Analytics cache service: read-through result cache with server-side permission filtering."""
