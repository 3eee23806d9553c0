try:
    import httpx  # noqa: F401
except ImportError as e:
    raise ImportError(
        "httpx is required to use hearth.httpx module. "
        "Please install hearth with the 'httpx' extra, "
        "e.g., 'pip install hearth[httpx]'."
    ) from e


from ._async_httpx import AsyncOfflineClient as AsyncOfflineClient, AsyncOfflineTransport as AsyncOfflineTransport
