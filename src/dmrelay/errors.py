"""Exception hierarchy for the relay."""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay errors."""


class ConfigurationError(RelayError):
    """Configuration missing or invalid. Fatal at startup."""


class SourceFetchError(RelayError):
    """A Slack API call failed for a conversation."""

    def __init__(self, message: str, conversation_id: Optional[str] = None):
        super().__init__(message)
        self.conversation_id = conversation_id


class AttachmentDownloadError(RelayError):
    """Attachment bytes could not be downloaded from Slack."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DestinationDeliveryError(RelayError):
    """Delivery to a WhatsApp address failed."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class UploadFailedError(DestinationDeliveryError):
    """Media upload was rejected."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SendFailedError(DestinationDeliveryError):
    """Message send was rejected by the Graph API."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        status_code: Optional[int] = None,
        body: str = "",
        error_code: Optional[int] = None,
    ):
        super().__init__(message, address)
        self.status_code = status_code
        self.body = body
        self.error_code = error_code


class SessionExpiredError(SendFailedError):
    """No open 24h conversation window for the address.

    Consumed by the resilient send path, which re-opens the window with a
    template message and retries once.
    """
