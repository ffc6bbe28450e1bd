"""Exceptions raised to callers of the subtitle services."""


class SubtitleProcessingError(Exception):
    """Base class for caller errors in subtitle processing."""


class TalkNotFoundError(SubtitleProcessingError):
    """Toolbox talk does not exist in the caller's tenant."""


class JobStateError(SubtitleProcessingError):
    """Operation is not valid for the job's current status."""


class StorageKeyError(SubtitleProcessingError):
    """Storage key falls outside the caller's tenant prefix."""
