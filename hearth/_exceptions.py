__all__ = (
    "HearthError",
    "InstallError",
    "StoreError",
    "NetworkError",
    "LifecycleError",
    "ControlChannelError",
)


class HearthError(Exception): ...


class InstallError(HearthError): ...


class StoreError(HearthError): ...


class NetworkError(HearthError):
    """
    Raised by request senders when the network could not produce a response.

    The original exception (for example an `httpx.ConnectError`) is kept as `__cause__`.
    """


class LifecycleError(HearthError): ...


class ControlChannelError(HearthError): ...
