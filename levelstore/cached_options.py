"""Options with per-level compaction limits computed once up front."""

from __future__ import annotations

import dataclasses
from typing import Any, Optional

from .options import Options, Strict

CACHED_LEVELS = 7


def dup_options(options: Optional[Options] = None) -> Options:
    """Return a shallow copy of options; unset strictness becomes the default."""
    copy = dataclasses.replace(options) if options is not None else Options()
    if copy.strict == 0:
        copy.strict = Strict.DEFAULT
    return copy


class CachedOptions:
    """Wraps Options and answers compaction limits of low levels from a cache.

    Limits of levels below CACHED_LEVELS are taken when the wrapper is made;
    higher levels and every other attribute come from the wrapped options.
    """

    def __init__(self, options: Options) -> None:
        self.options = options
        levels = range(CACHED_LEVELS)
        self._expand_limit = tuple(options.get_compaction_expand_limit(level) for level in levels)
        self._gp_overlaps = tuple(options.get_compaction_gp_overlaps(level) for level in levels)
        self._source_limit = tuple(options.get_compaction_source_limit(level) for level in levels)
        self._table_size = tuple(options.get_compaction_table_size(level) for level in levels)
        self._total_size = tuple(options.get_compaction_total_size(level) for level in levels)

    def __getattr__(self, name: str) -> Any:
        if name == "options":
            raise AttributeError(name)
        return getattr(self.options, name)

    def get_compaction_expand_limit(self, level: int) -> int:
        """Maximum compaction size after expansion at the given source level."""
        if level < CACHED_LEVELS:
            return self._expand_limit[level]
        return self.options.get_compaction_expand_limit(level)

    def get_compaction_gp_overlaps(self, level: int) -> int:
        """Maximum grandparent overlap one output table may generate."""
        if level < CACHED_LEVELS:
            return self._gp_overlaps[level]
        return self.options.get_compaction_gp_overlaps(level)

    def get_compaction_source_limit(self, level: int) -> int:
        """Maximum compaction source size at the given level."""
        if level < CACHED_LEVELS:
            return self._source_limit[level]
        return self.options.get_compaction_source_limit(level)

    def get_compaction_table_size(self, level: int) -> int:
        """Size limit of tables that compaction writes at the given level."""
        if level < CACHED_LEVELS:
            return self._table_size[level]
        return self.options.get_compaction_table_size(level)

    def get_compaction_total_size(self, level: int) -> int:
        """Total size limit of the tables at the given level."""
        if level < CACHED_LEVELS:
            return self._total_size[level]
        return self.options.get_compaction_total_size(level)