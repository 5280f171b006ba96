from __future__ import annotations


class PerfDiagError(RuntimeError):
    """Base class for failures that abort one analysis or comparison."""


class RecordNotFoundError(PerfDiagError, FileNotFoundError):
    """Raised when a referenced counter record file does not exist."""


class EmptyRecordError(PerfDiagError, ValueError):
    """Raised when a record holds no counter entries at all."""


class ConfigError(PerfDiagError, ValueError):
    """Raised when an analysis config file cannot be loaded or validated."""


class RecordingError(PerfDiagError):
    """Raised when the external `perf stat` run cannot produce a record."""
