"""Cache key builders for analytics results. Single place for key format (DRY).

Key format (dimensions in fixed order, wildcard for absent ones):
    datasource:{id}:m:{measure}:p:{practice}:prov:{provider}:freq:{frequency}

Lookup walks build_hierarchy() from most to least specific; the first
hit wins, never the freshest or largest entry.
"""

from __future__ import annotations

from app.core.constants import (
    CACHE_KEY_SEP,
    CACHE_KEY_WILDCARD,
    CACHE_PREFIX_AUTO_WARM,
    CACHE_PREFIX_DATASOURCE,
    CACHE_PREFIX_WARM_LOCK,
    CACHE_PREFIX_WARM_META,
    CACHE_SEGMENT_FREQUENCY,
    CACHE_SEGMENT_MEASURE,
    CACHE_SEGMENT_PRACTICE,
    CACHE_SEGMENT_PROVIDER,
)
from app.domain.value_objects import CacheKeyComponents

# Fallback levels after the exact key, most to least specific. A level is
# used only when every dimension it keeps is present in the request.
HIERARCHY_LEVELS: tuple[frozenset[str], ...] = (
    frozenset({"measure", "practice_id", "provider_id", "frequency"}),
    frozenset({"measure", "practice_id", "frequency"}),
    frozenset({"measure", "frequency"}),
    frozenset(),
)

# Level names reported by stats, keyed by the set of dimensions a key carries.
LEVEL_NAMES: dict[frozenset[str], str] = {
    HIERARCHY_LEVELS[0]: "full",
    HIERARCHY_LEVELS[1]: "practice",
    HIERARCHY_LEVELS[2]: "measure",
    HIERARCHY_LEVELS[3]: "datasource",
}

_GLOB_SPECIAL = "*?[]\\"


def _segment(value: object | None) -> str:
    return CACHE_KEY_WILDCARD if value is None else str(value)


def build_key(components: CacheKeyComponents) -> str:
    """Canonical cache key for components. Pure: same input, same key."""
    return CACHE_KEY_SEP.join(
        [
            CACHE_PREFIX_DATASOURCE,
            str(components.data_source_id),
            CACHE_SEGMENT_MEASURE,
            _segment(components.measure),
            CACHE_SEGMENT_PRACTICE,
            _segment(components.practice_id),
            CACHE_SEGMENT_PROVIDER,
            _segment(components.provider_id),
            CACHE_SEGMENT_FREQUENCY,
            _segment(components.frequency),
        ]
    )


def restrict(components: CacheKeyComponents, keep: frozenset[str]) -> CacheKeyComponents:
    """Return components with every dimension outside keep set to absent."""
    return CacheKeyComponents(
        data_source_id=components.data_source_id,
        measure=components.measure if "measure" in keep else None,
        practice_id=components.practice_id if "practice_id" in keep else None,
        provider_id=components.provider_id if "provider_id" in keep else None,
        frequency=components.frequency if "frequency" in keep else None,
    )


def build_hierarchy(components: CacheKeyComponents) -> list[str]:
    """Keys from most specific (exact) to least specific (data source only).

    The exact key always comes first. Each fallback level follows only when
    the request carries every dimension that level keeps, so a level never
    invents a dimension the caller did not ask for.

    Example:
        {1, measure='Charges', frequency='Monthly'} ->
        ['datasource:1:m:Charges:p:*:prov:*:freq:Monthly',
         'datasource:1:m:*:p:*:prov:*:freq:*']
    """
    present = components.present_dimensions()
    keys = [build_key(components)]
    for level in HIERARCHY_LEVELS:
        if not level <= present:
            continue
        key = build_key(restrict(components, level))
        if key not in keys:
            keys.append(key)
    return keys


def parse_key(key: str) -> CacheKeyComponents | None:
    """Inverse of build_key; None if key is not an analytics cache key."""
    parts = key.split(CACHE_KEY_SEP)
    labels = (
        CACHE_SEGMENT_MEASURE,
        CACHE_SEGMENT_PRACTICE,
        CACHE_SEGMENT_PROVIDER,
        CACHE_SEGMENT_FREQUENCY,
    )
    if len(parts) != 10 or parts[0] != CACHE_PREFIX_DATASOURCE:
        return None
    if tuple(parts[2::2]) != labels:
        return None
    measure, practice, provider, frequency = (
        None if value == CACHE_KEY_WILDCARD else value for value in parts[3::2]
    )
    try:
        return CacheKeyComponents(
            data_source_id=int(parts[1]),
            measure=measure,
            practice_id=int(practice) if practice is not None else None,
            provider_id=int(provider) if provider is not None else None,
            frequency=frequency,
        )
    except ValueError:
        return None


def level_name(components: CacheKeyComponents) -> str:
    """Stats label for the hierarchy level a key belongs to ('custom' if off-hierarchy)."""
    return LEVEL_NAMES.get(components.present_dimensions(), "custom")


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so value matches literally in SCAN MATCH."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)


def data_source_pattern(data_source_id: int | None = None) -> str:
    """SCAN pattern for all analytics keys, or all keys of one data source."""
    ds = CACHE_KEY_WILDCARD if data_source_id is None else str(data_source_id)
    return f"{CACHE_PREFIX_DATASOURCE}{CACHE_KEY_SEP}{ds}{CACHE_KEY_SEP}*"


def invalidation_patterns(
    data_source_id: int | None = None, measure: str | None = None
) -> list[str]:
    """Patterns deleted by invalidate().

    Measure invalidation also drops the measure-wildcard entries of the
    same data source, since those hold every measure's rows.
    """
    if measure is None:
        return [data_source_pattern(data_source_id)]
    ds = CACHE_KEY_WILDCARD if data_source_id is None else str(data_source_id)
    prefix = f"{CACHE_PREFIX_DATASOURCE}{CACHE_KEY_SEP}{ds}{CACHE_KEY_SEP}{CACHE_SEGMENT_MEASURE}"
    return [
        f"{prefix}{CACHE_KEY_SEP}{escape_glob(measure)}{CACHE_KEY_SEP}*",
        f"{prefix}{CACHE_KEY_SEP}{escape_glob(CACHE_KEY_WILDCARD)}{CACHE_KEY_SEP}*",
    ]


def warm_lock_key(data_source_id: int) -> str:
    """Mutual-exclusion lock for warming one data source."""
    return f"{CACHE_PREFIX_WARM_LOCK}{CACHE_KEY_SEP}{data_source_id}"


def warm_metadata_key(data_source_id: int) -> str:
    """Timestamp of the last successful warm."""
    return f"{CACHE_PREFIX_WARM_META}{CACHE_KEY_SEP}{data_source_id}{CACHE_KEY_SEP}last_warm"


def auto_warm_cooldown_key(data_source_id: int) -> str:
    """Presence means auto-warming is cooling down for this data source."""
    return f"{CACHE_PREFIX_AUTO_WARM}{CACHE_KEY_SEP}{data_source_id}"
