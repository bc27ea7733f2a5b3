# core/errors.py
"""
Error taxonomy for the acquisition pipeline.
"""


class CardioSenseError(Exception):
    """Base class for all CardioSense errors"""


class InvalidParameter(CardioSenseError, ValueError):
    """Bad synthesizer or configuration input, rejected at the call site"""


class AlreadyRunning(CardioSenseError):
    """start() called while a run is counting down or acquiring"""

    def __init__(self, state):
        super().__init__(f"Session already running (state={state.value})")
        self.state = state


class LinkError(CardioSenseError):
    """Failure of the wireless sensor link"""


class NotSupported(LinkError):
    """No usable Bluetooth stack on this host"""


class NotFound(LinkError):
    """No matching sensor was found (or the user cancelled the pairing)"""


class LinkConnectionError(LinkError):
    """The sensor was found but the connection could not be established"""


class NotReady(LinkError):
    """subscribe() called before the link is connected"""


class StreamFailure(CardioSenseError):
    """Transport lost while acquiring; the run has been stopped"""

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause


class InsufficientData(CardioSenseError):
    """Not enough samples in the window to interpret"""
