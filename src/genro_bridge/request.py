# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Native mutable request.

The native ``Request`` is what application code talks to. In worker mode
it holds no request data itself: ``set_message()`` installs a
``RequestAdapter`` over the inbound ``ServerRequest`` and every getter
delegates to it. ``reset()`` detaches the adapter at the end of the request.

Proxy trust
===========
Headers listed in ``secure_headers`` (``X-Forwarded-*`` and friends) can
be forged by any client. They are removed from ``get_headers()`` unless
``REMOTE_ADDR`` matches an entry of ``trusted_hosts``, an IP address or a
CIDR network::

    request = Request(trusted_hosts=["10.0.0.0/8", "127.0.0.1"])

Example::

    request = Request(parsers={"application/json": JsonParser})
    request.set_message(message)
    request.get_body_params()              # parsed JSON body
    request.get_headers().get("Accept")
    request.get_csrf_token_from_header()   # None when the header is absent
    request.reset()
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Iterable, Mapping

from .adapters.request_adapter import RequestAdapter
from .cookies import CookieCollection
from .datastructures import HeaderCollection
from .exceptions import ConfigurationError
from .messages import ServerRequest
from .parsers import DEFAULT_PARSERS, ParserRegistry

__all__ = ["DEFAULT_SECURE_HEADERS", "Request"]

logger = logging.getLogger("genro_bridge.request")

DEFAULT_SECURE_HEADERS: tuple[str, ...] = (
    "X-Forwarded-For",
    "X-Forwarded-Host",
    "X-Forwarded-Proto",
    "X-Forwarded-Port",
    "Front-End-Https",
    "X-Rewrite-Url",
    "X-Original-Host",
    "Forwarded",
)


class Request:
    """Mutable request facade over an inbound message.

    Args:
        parsers: Media type -> parser definitions, see ``ParserRegistry``.
        enable_cookie_validation: Verify signed cookie values.
        cookie_validation_key: Verification key.
        trusted_hosts: Peers allowed to send ``secure_headers``.
        secure_headers: Proxy headers filtered for untrusted peers.
        csrf_header: Header carrying the CSRF token.
        method_param: Body field overriding the request method.
    """

    def __init__(
        self,
        parsers: Mapping[str, Any] | ParserRegistry | None = None,
        enable_cookie_validation: bool = False,
        cookie_validation_key: str = "",
        trusted_hosts: Iterable[str] = (),
        secure_headers: Iterable[str] = DEFAULT_SECURE_HEADERS,
        csrf_header: str = "X-CSRF-Token",
        method_param: str = "_method",
    ) -> None:
        if isinstance(parsers, ParserRegistry):
            self.parsers = parsers
        else:
            self.parsers = ParserRegistry(DEFAULT_PARSERS if parsers is None else parsers)
        self.enable_cookie_validation = enable_cookie_validation
        self.cookie_validation_key = cookie_validation_key
        self.trusted_hosts = list(trusted_hosts)
        self.secure_headers = list(secure_headers)
        self.csrf_header = csrf_header
        self.method_param = method_param
        self._adapter: RequestAdapter | None = None

    # ------------------------------------------------------------- lifecycle

    def set_message(self, message: ServerRequest) -> None:
        self._adapter = RequestAdapter(message, self.parsers)

    def reset(self) -> None:
        """Clear per-request tables and detach the message."""
        if self._adapter is not None:
            self._adapter.clear()
        self._adapter = None

    @property
    def adapter(self) -> RequestAdapter:
        if self._adapter is None:
            raise ConfigurationError("Request message is not set; call set_message() first.")
        return self._adapter

    @property
    def message(self) -> ServerRequest:
        """The inbound message, including a parsed body once parsed."""
        return self.adapter.message

    @property
    def has_message(self) -> bool:
        return self._adapter is not None

    # ------------------------------------------------------------ delegation

    def get_body_params(self) -> dict[str, Any]:
        return self.adapter.get_body_params(self.method_param)

    def get_body_param(self, name: str, default: Any = None) -> Any:
        params = self.get_body_params()
        return params.get(name, default) if isinstance(params, Mapping) else default

    def get_parsed_body(self) -> Any:
        return self.adapter.get_parsed_body()

    def get_raw_body(self) -> bytes:
        return self.adapter.get_raw_body()

    def get_method(self) -> str:
        return self.adapter.get_method(self.method_param)

    def get_query_params(self) -> dict[str, Any]:
        return self.adapter.get_query_params()

    def get_query_param(self, name: str, default: Any = None) -> Any:
        return self.get_query_params().get(name, default)

    def get_query_string(self) -> str:
        return self.adapter.get_query_string()

    def get_script_url(self) -> str:
        return self.adapter.get_script_url()

    def get_url(self) -> str:
        return self.adapter.get_url()

    def get_server_params(self) -> dict[str, Any]:
        return self.adapter.get_server_params()

    def get_uploaded_files(self) -> dict[str, Any]:
        return self.adapter.get_uploaded_files()

    def get_cookies(self) -> CookieCollection:
        cookies = self.adapter.get_cookies(self.enable_cookie_validation, self.cookie_validation_key)
        return CookieCollection(cookies, read_only=True)

    # --------------------------------------------------------------- headers

    def get_headers(self) -> HeaderCollection:
        """Request headers without untrusted proxy headers."""
        headers = self.adapter.get_headers()
        self._filter_headers(headers)
        return headers

    def _filter_headers(self, headers: HeaderCollection) -> None:
        if self.is_trusted_peer():
            return
        for name in self.secure_headers:
            if headers.remove(name) is not None:
                logger.debug("Removed %s header sent by untrusted peer %s", name, self.remote_ip)

    def is_trusted_peer(self) -> bool:
        remote_ip = self.remote_ip
        if not remote_ip or not self.trusted_hosts:
            return False
        try:
            address = ipaddress.ip_address(remote_ip)
        except ValueError:
            return False
        for host in self.trusted_hosts:
            try:
                if address in ipaddress.ip_network(host, strict=False):
                    return True
            except ValueError:
                continue
        return False

    def get_csrf_token_from_header(self) -> str | None:
        """CSRF token header value, ``None`` when absent or without a message."""
        if self._adapter is None:
            return None
        return self.get_headers().get(self.csrf_header)

    # ------------------------------------------------------- server params

    @property
    def remote_ip(self) -> str | None:
        if self._adapter is None:
            return None
        value = self._adapter.get_server_params().get("REMOTE_ADDR")
        return str(value) if value else None

    @property
    def remote_port(self) -> int | None:
        if self._adapter is None:
            return None
        value = self._adapter.get_server_params().get("REMOTE_PORT")
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @property
    def request_time(self) -> float | None:
        """``REQUEST_TIME_FLOAT`` (or ``REQUEST_TIME``) from the server params."""
        if self._adapter is None:
            return None
        params = self._adapter.get_server_params()
        value = params.get("REQUEST_TIME_FLOAT", params.get("REQUEST_TIME"))
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    def __repr__(self) -> str:
        if self._adapter is None:
            return "Request(<detached>)"
        message = self._adapter.message
        return f"Request(method={message.method!r}, uri={message.uri!r})"
