class ImportJobError(Exception):
    """Base class for every error raised while importing gacha pulls."""


class FatalImportError(ImportJobError):
    """Stops the whole import job, no further banners are attempted."""


class AuthKeyInvalidError(FatalImportError):
    def __init__(self, retcode: int, message: str) -> None:
        super().__init__(f"Auth key is invalid or expired (retcode {retcode}): {message}")
        self.retcode = retcode


class UnsupportedExportError(FatalImportError):
    """The uploaded file does not match any known export schema."""


class InvalidSourceError(FatalImportError):
    """The import source descriptor itself is unusable (e.g. a URL without an auth key)."""


class BannerFetchError(ImportJobError):
    """Stops pagination of one banner, the job continues with the next banner."""

    def __init__(self, banner_code: str, reason: str) -> None:
        super().__init__(f"Failed to fetch banner {banner_code}: {reason}")
        self.banner_code = banner_code
        self.reason = reason


class RecordRejectedError(ImportJobError):
    """A single pull record failed validation and is counted as an error."""
