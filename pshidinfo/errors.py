class SessionError(Exception):
    pass


class TransportError(SessionError):
    """Open, read, write or feature exchange failed on the device stream."""


class StreamClosedError(TransportError):
    """The stream was closed underneath a pending operation."""


class ReportTimeoutError(TransportError, TimeoutError):
    """No data arrived before the read timeout expired. Recoverable."""


class ProtocolError(SessionError):
    """The device cannot be driven with the known report layouts."""


class SessionCancelled(SessionError):
    pass
