"""Storage backends, options and manifest records for a LevelDB-style key/value store."""

__version__ = "0.1.0"

__all__ = [
    "storage",
    "counting",
    "file_storage",
    "options",
    "cached_options",
    "session_record",
]