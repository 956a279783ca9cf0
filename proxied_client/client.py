"""
HTTP client that can route every request through a forward proxy.

In proxied mode each request is sent to the proxy endpoint instead of its
real destination. The destination travels in the X-Forwarded-For header and
the proxy credential in X-Authorization; the counterpart proxy expects
exactly these header names. Callers must not replace those two headers.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from proxied_client.config import Config, get_config
from proxied_client.errors import ProxyConfigError

logger = structlog.get_logger(__name__)

CONFIG_KEY = "proxy"
TIMEOUT = 30.0

FORWARDED_FOR_HEADER = "X-Forwarded-For"
AUTHORIZATION_HEADER = "X-Authorization"

# RFC 7230 token
_HEADER_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class ProxyConfig(BaseModel):
    """The `proxy` section of the configuration."""

    model_config = ConfigDict(extra="ignore")

    endpoint: str = ""
    authorization: str = ""


def _parse_header_value(value: str, what: str) -> str:
    if not isinstance(value, str):
        raise ProxyConfigError(f"unable to parse {what}: expected str, got {type(value).__name__}")
    for ch in value:
        code = ord(ch)
        if code > 0x7E or (code < 0x20 and ch != "\t") or code == 0x7F:
            raise ProxyConfigError(f"unable to parse {what}: invalid character {ch!r}")
    return value


def _destination_header(url) -> str:
    """The destination as a header-safe string; non-ASCII URLs are percent/IDNA-encoded."""
    url = str(url)
    if url.isascii():
        return url
    return str(httpx.URL(url))


def _parse_header_name(name: str) -> str:
    if not isinstance(name, str) or not _HEADER_NAME_RE.match(name):
        raise ProxyConfigError(f"unable to parse header name {name!r}")
    return name


@dataclass(frozen=True)
class Proxy:
    """Where proxied requests go and the credential the proxy expects."""

    endpoint: str
    authorization: str = field(repr=False)

    @classmethod
    def parse(cls, endpoint: str, authorization: str) -> "Proxy":
        """Validate both values, raising ProxyConfigError if either is unusable."""
        if not endpoint:
            raise ProxyConfigError("unable to parse proxy endpoint: empty")
        try:
            url = httpx.URL(endpoint)
        except (httpx.InvalidURL, TypeError) as e:
            raise ProxyConfigError(f"unable to parse proxy endpoint {endpoint!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ProxyConfigError(
                f"unable to parse proxy endpoint {endpoint!r}: not an absolute http(s) URL"
            )

        if not authorization:
            raise ProxyConfigError("unable to parse proxy authorization: empty")
        _parse_header_value(authorization, "proxy authorization")

        return cls(endpoint=endpoint, authorization=authorization)


class RequestBuilder:
    """A request that has not been sent yet.

    Mutators return the builder so calls can be chained:

        client.post(url).header("Accept", "application/json").json(payload).send()

    For builders made by AsyncProxiedClient, ``send()`` returns an awaitable.
    """

    def __init__(self, transport, method: str, url, headers: List[Tuple[str, str]] = None):
        self._transport = transport
        self.method = method.upper()
        self.url = url
        self._headers: List[Tuple[str, str]] = list(headers or [])
        self._params: List[Tuple[str, Any]] = []
        self._body: Dict[str, Any] = {}
        self._timeout = httpx.USE_CLIENT_DEFAULT

    @property
    def headers(self) -> httpx.Headers:
        return httpx.Headers(self._headers)

    def header(self, name: str, value: str) -> "RequestBuilder":
        """Append a header; existing values for the same name are kept."""
        self._headers.append((name, value))
        return self

    def add_headers(self, headers: Mapping[str, str]) -> "RequestBuilder":
        self._headers.extend(headers.items())
        return self

    def query(self, params: Mapping[str, Any]) -> "RequestBuilder":
        self._params.extend(params.items())
        return self

    def content(self, content) -> "RequestBuilder":
        self._body = {"content": content}
        return self

    def json(self, payload: Any) -> "RequestBuilder":
        self._body = {"json": payload}
        return self

    def form(self, data: Mapping[str, Any], files=None) -> "RequestBuilder":
        self._body = {"data": data}
        if files is not None:
            self._body["files"] = files
        return self

    def timeout(self, seconds: float) -> "RequestBuilder":
        """Override the client timeout for this request only."""
        self._timeout = seconds
        return self

    def build(self) -> httpx.Request:
        return self._transport.build_request(
            self.method,
            self.url,
            headers=self._headers,
            params=self._params or None,
            timeout=self._timeout,
            **self._body,
        )

    def send(self, **kwargs):
        """Dispatch the request. Transport errors propagate unchanged."""
        return self._transport.send(self.build(), **kwargs)

    def __repr__(self):
        return f"<RequestBuilder {self.method} {self.url}>"


class _ProxiedClientBase:
    transport_class = None

    def __init__(self, proxy: Optional[Proxy] = None, **client_kwargs):
        """Build a client in proxied mode when ``proxy`` is given, direct mode otherwise.

        Extra keyword arguments go to the httpx client constructor. The
        request timeout is always TIMEOUT.
        """
        self._proxy = proxy
        self._client_kwargs = {k: v for k, v in client_kwargs.items() if k not in ("timeout", "headers")}
        headers = client_kwargs.get("headers")
        self._default_headers = self._parse_default_headers(headers) if headers else None
        self._transport = self.transport_class(
            timeout=TIMEOUT,
            headers=self._default_headers,
            **self._client_kwargs,
        )

    @classmethod
    def new(cls, endpoint: str, authorization: str, **client_kwargs):
        """Build a client that routes everything through ``endpoint``.

        Raises ProxyConfigError if the endpoint or the authorization is malformed.
        """
        return cls(Proxy.parse(endpoint, authorization), **client_kwargs)

    @classmethod
    def new_from_config(cls, config: Config = None, **client_kwargs):
        """Build a client from the `proxy` config section.

        Missing or incomplete proxy settings fall back to direct mode with a
        warning. A malformed configuration source raises ConfigError.
        """
        if config is None:
            config = get_config()

        cfg = config.parse(CONFIG_KEY, ProxyConfig)
        if cfg is None:
            logger.warning("proxy_config_missing", key=CONFIG_KEY, mode="direct")
            return cls(**client_kwargs)

        if cfg.endpoint and cfg.authorization:
            client = cls.new(cfg.endpoint, cfg.authorization, **client_kwargs)
            logger.info("proxy_enabled", endpoint=cfg.endpoint)
            return client

        logger.warning(
            "proxy_config_incomplete",
            endpoint="set" if cfg.endpoint else "empty",
            authorization="set" if cfg.authorization else "empty",
            mode="direct",
        )
        return cls(**client_kwargs)

    @staticmethod
    def _parse_default_headers(headers: Mapping[str, str]) -> Dict[str, str]:
        return {
            _parse_header_name(name): _parse_header_value(value, f"header {name}")
            for name, value in dict(headers).items()
        }

    def with_default_headers(self, headers: Mapping[str, str]):
        """Return a new client that sends ``headers`` with every request.

        The proxy is shared; this client is left untouched.
        """
        return type(self)(self._proxy, headers=headers, **self._client_kwargs)

    @property
    def proxy(self) -> Optional[Proxy]:
        return self._proxy

    @property
    def is_proxied(self) -> bool:
        return self._proxy is not None

    @property
    def transport(self):
        """The underlying httpx client."""
        return self._transport

    def request(self, method: str, url: str) -> RequestBuilder:
        if self._proxy is None:
            return RequestBuilder(self._transport, method, url)
        return RequestBuilder(
            self._transport,
            method,
            self._proxy.endpoint,
            headers=[
                (FORWARDED_FOR_HEADER, _destination_header(url)),
                (AUTHORIZATION_HEADER, self._proxy.authorization),
            ],
        )

    def get(self, url: str) -> RequestBuilder:
        return self.request("GET", url)

    def post(self, url: str) -> RequestBuilder:
        return self.request("POST", url)

    def head(self, url: str) -> RequestBuilder:
        return self.request("HEAD", url)

    def put(self, url: str) -> RequestBuilder:
        return self.request("PUT", url)

    def delete(self, url: str) -> RequestBuilder:
        return self.request("DELETE", url)

    def patch(self, url: str) -> RequestBuilder:
        return self.request("PATCH", url)

    def __repr__(self):
        mode = f"proxied via {self._proxy.endpoint}" if self._proxy else "direct"
        return f"<{type(self).__name__} {mode}>"


class ProxiedClient(_ProxiedClientBase):
    """Synchronous client over httpx.Client."""

    transport_class = httpx.Client

    def close(self):
        self._transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncProxiedClient(_ProxiedClientBase):
    """Same routing over httpx.AsyncClient; builders' send() must be awaited."""

    transport_class = httpx.AsyncClient

    async def aclose(self):
        await self._transport.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
