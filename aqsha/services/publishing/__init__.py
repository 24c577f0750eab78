"""Report publishing package."""

from aqsha.services.publishing.cloudinary_publisher import (
    CloudinaryReportPublisher,
    ReportPublishError,
)

__all__ = ["CloudinaryReportPublisher", "ReportPublishError"]
