"""Core constants: cache key prefixes and shared literal values.

Single source of truth for cache key structure (DRY). Used by
app.application.services.cache_keys and the row filters.
"""

# Cache key prefixes
CACHE_PREFIX_DATASOURCE = "datasource"
CACHE_PREFIX_WARM_LOCK = "lock:cache:warm"
CACHE_PREFIX_WARM_META = "cache:meta"
CACHE_PREFIX_AUTO_WARM = "cache:auto-warm:last"

# Delimiter for composite keys
CACHE_KEY_SEP = ":"

# Placeholder for an absent dimension in a cache key
CACHE_KEY_WILDCARD = "*"

# Dimension segment labels, in key order
CACHE_SEGMENT_MEASURE = "m"
CACHE_SEGMENT_PRACTICE = "p"
CACHE_SEGMENT_PROVIDER = "prov"
CACHE_SEGMENT_FREQUENCY = "freq"

# Well-known row columns
COLUMN_PRACTICE = "practice_id"
COLUMN_PROVIDER = "provider_id"
COLUMN_MEASURE = "measure"
COLUMN_FREQUENCY = "frequency"
COLUMN_DATE_INDEX = "date_index"

# Frequency lives under either name depending on the table's vintage.
FREQUENCY_COLUMNS = ("frequency", "time_period")

# Always filterable, regardless of the data source's column registry.
STANDARD_FILTER_COLUMNS = frozenset(
    {
        COLUMN_MEASURE,
        *FREQUENCY_COLUMNS,
        COLUMN_PRACTICE,
        COLUMN_PROVIDER,
        COLUMN_DATE_INDEX,
    }
)

# Permission codes backing the organization/all scopes
PERMISSION_ANALYTICS_READ_ALL = "analytics:read:all"
PERMISSION_ANALYTICS_READ_ORGANIZATION = "analytics:read:organization"
