"""Error handling and custom exceptions

Every error raised by the history store or the alert manager carries the
operation that failed so callers can log and decide without parsing messages.
The health analyzer never raises.
"""

from typing import Optional


class DriveWatchException(Exception):
    """Base exception for DriveWatch"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(DriveWatchException):
    """Raised when a component is constructed with an unusable configuration"""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            message=f"Invalid configuration for {setting}: {reason}",
            details={"setting": setting, "reason": reason}
        )


class HistoryStoreError(DriveWatchException):
    """Raised when a history database operation fails"""

    def __init__(self, operation: str, original_error: str, device: Optional[str] = None):
        self.operation = operation
        self.device = device
        target = f" for {device}" if device else ""
        super().__init__(
            message=f"History store {operation} failed{target}: {original_error}",
            details={
                "operation": operation,
                "device": device,
                "original_error": original_error,
            }
        )


class AlertDeliveryError(DriveWatchException):
    """Raised when a webhook alert cannot be delivered"""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(
            message=f"Failed to deliver alert to {url}: {reason}",
            details={"url": url, "reason": reason, "status_code": status_code}
        )
