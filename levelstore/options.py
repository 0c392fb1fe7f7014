"""Options that tune the database, its reads and its writes."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024

DEFAULT_BLOCK_CACHE_CAPACITY = 8 * MIB
DEFAULT_BLOCK_RESTART_INTERVAL = 16
DEFAULT_BLOCK_SIZE = 4 * KIB
DEFAULT_COMPACTION_EXPAND_LIMIT_FACTOR = 25
DEFAULT_COMPACTION_GP_OVERLAPS_FACTOR = 10
DEFAULT_COMPACTION_L0_TRIGGER = 4
DEFAULT_COMPACTION_SOURCE_LIMIT_FACTOR = 1
DEFAULT_COMPACTION_TABLE_SIZE = 2 * MIB
DEFAULT_COMPACTION_TABLE_SIZE_MULTIPLIER = 1.0
DEFAULT_COMPACTION_TOTAL_SIZE = 10 * MIB
DEFAULT_COMPACTION_TOTAL_SIZE_MULTIPLIER = 10.0
DEFAULT_ITERATOR_SAMPLING_RATE = 1 * MIB
DEFAULT_WRITE_BUFFER = 4 * MIB
DEFAULT_WRITE_L0_PAUSE_TRIGGER = 12
DEFAULT_WRITE_L0_SLOWDOWN_TRIGGER = 8
DEFAULT_FILTER_BASE_LG = 11
DEFAULT_MAX_MANIFEST_FILE_SIZE = 64 * MIB
DEFAULT_OPEN_FILES_CACHE_CAPACITY = 200 if sys.platform == "darwin" else 500


class CacherFunc:
    """A caching algorithm built from a factory taking the capacity."""

    def __init__(self, new_func: Optional[Callable[[int], Any]] = None) -> None:
        self._new_func = new_func

    def new(self, capacity: int) -> Any:
        """Return a cacher of the given capacity, or None if caching is disabled."""
        if self._new_func is None:
            return None
        return self._new_func(capacity)


def passthrough_cacher(cacher: Any) -> CacherFunc:
    """Return a caching algorithm that always hands out the given cacher instance."""
    return CacherFunc(lambda capacity: cacher)


NO_CACHER = CacherFunc(None)


class Compression(enum.IntEnum):
    """Block compression of sorted tables."""

    DEFAULT = 0
    NONE = 1
    SNAPPY = 2

    def __str__(self) -> str:
        return {
            Compression.DEFAULT: "default",
            Compression.NONE: "none",
            Compression.SNAPPY: "snappy",
        }[self]


DEFAULT_COMPRESSION_TYPE = Compression.SNAPPY


class Strict(enum.IntFlag):
    """Strictness flags of the database."""

    MANIFEST = 1
    JOURNAL_CHECKSUM = 2
    JOURNAL = 4
    BLOCK_CHECKSUM = 8
    COMPACTION = 16
    READER = 32
    RECOVERY = 64
    OVERRIDE = 128
    ALL = MANIFEST | JOURNAL_CHECKSUM | JOURNAL | BLOCK_CHECKSUM | COMPACTION | READER | RECOVERY
    DEFAULT = JOURNAL_CHECKSUM | BLOCK_CHECKSUM | COMPACTION | READER
    # Non-zero so the defaults do not apply, yet no strict flag is set.
    NO_STRICT = OVERRIDE


def _scaled(base: int, per_level: Optional[list[float]], multiplier: float,
            default_multiplier: float, level: int) -> int:
    mult = 0.0
    if per_level is not None and level < len(per_level) and per_level[level] > 0:
        mult = per_level[level]
    elif multiplier > 0:
        mult = multiplier ** level
    if mult == 0:
        mult = default_multiplier ** level
    return int(float(base) * mult)


@dataclass
class Options:
    """Parameters of the database at large; zero values select the defaults."""

    alt_filters: list = field(default_factory=list)
    block_cacher: Optional[CacherFunc] = None
    block_cache_capacity: int = 0
    block_cache_evict_removed: bool = False
    block_restart_interval: int = 0
    block_size: int = 0
    compaction_expand_limit_factor: int = 0
    compaction_gp_overlaps_factor: int = 0
    compaction_l0_trigger: int = 0
    compaction_source_limit_factor: int = 0
    compaction_table_size: int = 0
    compaction_table_size_multiplier: float = 0.0
    compaction_table_size_multiplier_per_level: Optional[list[float]] = None
    compaction_total_size: int = 0
    compaction_total_size_multiplier: float = 0.0
    compaction_total_size_multiplier_per_level: Optional[list[float]] = None
    comparer: Any = None
    compression: int = Compression.DEFAULT
    disable_buffer_pool: bool = False
    disable_block_cache: bool = False
    disable_compaction_backoff: bool = False
    disable_large_batch_transaction: bool = False
    disable_seeks_compaction: bool = False
    error_if_exist: bool = False
    error_if_missing: bool = False
    filter: Any = None
    iterator_sampling_rate: int = 0
    no_sync: bool = False
    no_write_merge: bool = False
    open_files_cacher: Optional[CacherFunc] = None
    open_files_cache_capacity: int = 0
    read_only: bool = False
    strict: Strict = Strict(0)
    write_buffer: int = 0
    write_l0_pause_trigger: int = 0
    write_l0_slowdown_trigger: int = 0
    filter_base_lg: int = 0
    max_manifest_file_size: int = 0

    def get_block_cache_capacity(self) -> int:
        """Block cache capacity; negative configured values mean zero."""
        if self.block_cache_capacity == 0:
            return DEFAULT_BLOCK_CACHE_CAPACITY
        return max(self.block_cache_capacity, 0)

    def get_block_restart_interval(self) -> int:
        if self.block_restart_interval <= 0:
            return DEFAULT_BLOCK_RESTART_INTERVAL
        return self.block_restart_interval

    def get_block_size(self) -> int:
        if self.block_size <= 0:
            return DEFAULT_BLOCK_SIZE
        return self.block_size

    def get_compaction_expand_limit(self, level: int) -> int:
        """Maximum compaction size after expansion at the given source level."""
        factor = self.compaction_expand_limit_factor
        if factor <= 0:
            factor = DEFAULT_COMPACTION_EXPAND_LIMIT_FACTOR
        return self.get_compaction_table_size(level + 1) * factor

    def get_compaction_gp_overlaps(self, level: int) -> int:
        """Maximum grandparent overlap one output table may generate."""
        factor = self.compaction_gp_overlaps_factor
        if factor <= 0:
            factor = DEFAULT_COMPACTION_GP_OVERLAPS_FACTOR
        return self.get_compaction_table_size(level + 2) * factor

    def get_compaction_l0_trigger(self) -> int:
        if self.compaction_l0_trigger == 0:
            return DEFAULT_COMPACTION_L0_TRIGGER
        return self.compaction_l0_trigger

    def get_compaction_source_limit(self, level: int) -> int:
        """Maximum compaction source size at the given level."""
        factor = self.compaction_source_limit_factor
        if factor <= 0:
            factor = DEFAULT_COMPACTION_SOURCE_LIMIT_FACTOR
        return self.get_compaction_table_size(level + 1) * factor

    def get_compaction_table_size(self, level: int) -> int:
        """Size limit of tables that compaction writes at the given level."""
        base = self.compaction_table_size if self.compaction_table_size > 0 else DEFAULT_COMPACTION_TABLE_SIZE
        return _scaled(base, self.compaction_table_size_multiplier_per_level,
                       self.compaction_table_size_multiplier,
                       DEFAULT_COMPACTION_TABLE_SIZE_MULTIPLIER, level)

    def get_compaction_total_size(self, level: int) -> int:
        """Total size limit of the tables at the given level."""
        base = self.compaction_total_size if self.compaction_total_size > 0 else DEFAULT_COMPACTION_TOTAL_SIZE
        return _scaled(base, self.compaction_total_size_multiplier_per_level,
                       self.compaction_total_size_multiplier,
                       DEFAULT_COMPACTION_TOTAL_SIZE_MULTIPLIER, level)

    def get_compression(self) -> Compression:
        if self.compression in (Compression.NONE, Compression.SNAPPY):
            return Compression(self.compression)
        return DEFAULT_COMPRESSION_TYPE

    def get_iterator_sampling_rate(self) -> int:
        if self.iterator_sampling_rate == 0:
            return DEFAULT_ITERATOR_SAMPLING_RATE
        return max(self.iterator_sampling_rate, 0)

    def get_open_files_cache_capacity(self) -> int:
        if self.open_files_cache_capacity == 0:
            return DEFAULT_OPEN_FILES_CACHE_CAPACITY
        return max(self.open_files_cache_capacity, 0)

    def get_strict(self, strict: Strict) -> bool:
        """Whether any of the given strict flags is in effect."""
        if self.strict == 0:
            return bool(Strict.DEFAULT & strict)
        return bool(self.strict & strict)

    def get_write_buffer(self) -> int:
        if self.write_buffer <= 0:
            return DEFAULT_WRITE_BUFFER
        return self.write_buffer

    def get_write_l0_pause_trigger(self) -> int:
        if self.write_l0_pause_trigger == 0:
            return DEFAULT_WRITE_L0_PAUSE_TRIGGER
        return self.write_l0_pause_trigger

    def get_write_l0_slowdown_trigger(self) -> int:
        if self.write_l0_slowdown_trigger == 0:
            return DEFAULT_WRITE_L0_SLOWDOWN_TRIGGER
        return self.write_l0_slowdown_trigger

    def get_filter_base_lg(self) -> int:
        if self.filter_base_lg <= 0:
            return DEFAULT_FILTER_BASE_LG
        return self.filter_base_lg

    def get_max_manifest_file_size(self) -> int:
        if self.max_manifest_file_size <= 0:
            return DEFAULT_MAX_MANIFEST_FILE_SIZE
        return self.max_manifest_file_size


@dataclass
class ReadOptions:
    """Parameters of a read operation."""

    dont_fill_cache: bool = False
    strict: Strict = Strict(0)

    def get_strict(self, strict: Strict) -> bool:
        """Whether any of the given flags is set on these read options."""
        return bool(self.strict & strict)


@dataclass
class WriteOptions:
    """Parameters of a write operation."""

    no_write_merge: bool = False
    sync: bool = False


def get_strict(options: Optional[Options], read_options: Optional[ReadOptions], strict: Strict) -> bool:
    """Combine database and read strictness; OVERRIDE on the read options wins."""
    ro = read_options if read_options is not None else ReadOptions()
    if ro.get_strict(Strict.OVERRIDE):
        return ro.get_strict(strict)
    o = options if options is not None else Options()
    return o.get_strict(strict) or ro.get_strict(strict)