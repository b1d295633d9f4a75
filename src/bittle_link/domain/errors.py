class BittleLinkError(Exception):
    pass


class CommandValidationError(BittleLinkError, ValueError):
    pass


class ConnectFailure(BittleLinkError):
    pass


class SerialUnsupportedError(ConnectFailure):
    pass


class SerialDeviceError(ConnectFailure):
    pass


class NotConnectedError(BittleLinkError):
    pass


class LinkBusyError(BittleLinkError):
    pass
