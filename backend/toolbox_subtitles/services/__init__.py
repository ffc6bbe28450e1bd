"""Services package."""

from toolbox_subtitles.services.results import FailureKind, ServiceResult

__all__ = ["FailureKind", "ServiceResult"]
