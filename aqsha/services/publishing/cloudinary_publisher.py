"""
Report Publishing via Cloudinary

Rendered CSV/PDF reports can be uploaded as raw resources so clients get
a shareable URL instead of the body.

DESIGN DECISION: Publishing is optional and off by default
(APP publish_reports). When disabled, or when Cloudinary is not
configured, reports are returned inline.
"""

from typing import Optional
from uuid import UUID

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from tenacity import retry, stop_after_attempt, wait_exponential

from aqsha.config import CloudinarySettings, get_settings


class ReportPublishError(Exception):
    """Failed to upload a rendered report."""
    pass


class CloudinaryReportPublisher:
    """
    Uploads rendered reports to Cloudinary.

    Files land in `<folder>/<user_id>/<report_id>.<ext>`.
    """

    def __init__(self, settings: Optional[CloudinarySettings] = None):
        self._settings = settings or get_settings().cloudinary
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def publish(
        self,
        user_id: UUID,
        report_id: UUID,
        content: bytes,
        extension: str,
    ) -> str:
        """
        Upload a rendered report.

        Returns:
            The secure URL of the uploaded file

        Raises:
            ReportPublishError: If the upload fails or returns no URL
        """
        self._configure()

        try:
            result = cloudinary.uploader.upload(
                content,
                public_id=f"{report_id}.{extension}",
                folder=f"{self._settings.folder}/{user_id}",
                resource_type="raw",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise ReportPublishError(f"Cloudinary error: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ReportPublishError("No URL returned from Cloudinary")
        return url
