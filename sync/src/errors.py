"""Error types raised by the Strava sync."""


class SyncError(Exception):
    """Base class for fatal sync failures."""


class CredentialError(SyncError):
    """Refresh-token exchange failed or credentials are missing."""


class RemoteFetchError(SyncError):
    """Strava answered with a non-success HTTP status."""

    def __init__(self, what: str, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Strava {what} fetch failed: {status} {body}")


class MalformedResponseError(SyncError):
    """Response body did not have the expected shape."""
