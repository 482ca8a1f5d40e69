"""
Error taxonomy shared by the services and the HTTP layer.

None of these are fatal to a scan session: the session keeps classifying and
gating scans after any of them is raised or recorded as a notice.
"""


class QRScannerError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotAuthenticated(QRScannerError):
    status_code = 401

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class DecodeFailure(QRScannerError):
    status_code = 422

    def __init__(self, message: str = "Failed to decode image"):
        super().__init__(message)


class StoreWriteFailure(QRScannerError):
    status_code = 503


class StoreReadFailure(QRScannerError):
    status_code = 503


class SessionNotFound(QRScannerError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Scan session not found: {session_id}")


class SessionClosed(QRScannerError):
    status_code = 409

    def __init__(self, message: str = "Scan session is closed"):
        super().__init__(message)


class ClockMismatch(QRScannerError):
    status_code = 422
