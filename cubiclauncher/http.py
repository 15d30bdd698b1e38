"""HTTP primitives shared by the whole launcher.
"""

from typing import Optional, Any, Dict
import asyncio
import json
import ssl

import aiohttp
import certifi

from . import LAUNCHER_NAME, LAUNCHER_VERSION


__all__ = ["HttpResponse", "HttpError", "HttpClient"]


class HttpResponse:
    """An HTTP response containing the status, data and received headers.
    """

    __slots__ = "status", "data", "headers"

    def __init__(self, status: int = 0, data: bytes = b"null", headers: Optional[Dict[str, str]] = None) -> None:
        self.status = status
        self.data = data
        self.headers = {} if headers is None else headers

    def json(self) -> Any:
        """Parse the data as JSON. This may raise a JSONDecodeError.
        """
        return json.loads(self.data)

    def text(self) -> str:
        """Parse the data as UTF-8 text.
        """
        return self.data.decode()

    def __repr__(self) -> str:
        return f"<HttpResponse {self.status}>"


class HttpError(Exception):
    """An HTTP error, raised when the status code of the response is not 2xx.

    If any network error happens and it's impossible to receive a response from the
    server, an instance of `HttpResponse` with status equal to 0 is used (also has no
    headers and null data). The original reason for this error is given in the `reason`
    attribute in any case.
    """

    def __init__(self, res: HttpResponse, method: str, url: str, reason: Optional[BaseException]) -> None:
        super().__init__(res, method, url, reason)
        self.res = res
        self.method = method
        self.url = url
        self.reason = reason

    def __str__(self) -> str:
        if self.res.status == 0:
            return f"{self.method} {self.url}: {self.reason}"
        return f"{self.method} {self.url}: status {self.res.status}"

    def __repr__(self) -> str:
        return f"<HttpError {self.res}, origin: {self.method} {self.url}, reason: {self.reason}>"


def create_ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


class HttpClient:
    """The process-scoped HTTP client of the launcher. The underlying aiohttp session is
    only created on first use (it must be created from within a running event loop) and
    is shared by every component given this client, close it once done.

    The timeout bounds connecting and each wait for data, a transfer that keeps
    receiving data is never cut whatever its total duration.
    """

    def __init__(self, *, timeout: Optional[float] = 60.0) -> None:
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def user_agent(self) -> str:
        return f"{LAUNCHER_NAME}/{LAUNCHER_VERSION}"

    def session(self) -> aiohttp.ClientSession:
        """Get the underlying session, creating it if needed.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=create_ssl_context()),
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout),
                headers={"User-Agent": self.user_agent})
        return self._session

    async def request(self, method: str, url: str, *,
        data: Optional[bytes] = None,
        headers: Optional[dict] = None,
        accept: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> HttpResponse:
        """Make an asynchronous HTTP request and read its whole body.

        :return: The response returned should've a status of 2xx.
        :raises HttpError: An error wrapping a response that is not of status 2xx.
        """

        if headers is None:
            headers = {}
        if accept is not None:
            headers["Accept"] = accept
        if content_type is not None:
            headers["Content-Type"] = content_type

        try:
            async with self.session().request(method, url, data=data, headers=headers) as res:
                body = await res.read()
                response = HttpResponse(res.status, body, dict(res.headers))
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise HttpError(HttpResponse(), method, url, error)

        if not 200 <= response.status < 300:
            raise HttpError(response, method, url, None)

        return response

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
