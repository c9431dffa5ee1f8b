"""HTTP helpers with cross-platform TLS guidance."""

from __future__ import annotations

from collections.abc import Mapping
import os
from typing import Any

import requests

from markdd.core.exceptions import TLSCertificateError, TransportError
from markdd.version import get_version


DEFAULT_TIMEOUT = 10.0


def _tls_help(url: str) -> str:
    return (
        "TLS certificate verification failed while contacting "
        f"'{url}'. On macOS run the Python 'Install Certificates.command' "
        "(from the python.org installer). On Windows run 'py -m pip install --upgrade certifi'. "
        "On Linux install your 'ca-certificates' package (apt/yum/apk). "
        "Also check system date/time and any proxy or corporate SSL inspection."
    )


def user_agent() -> str:
    """Return the user agent sent with every outbound request."""
    override = os.getenv("MARKDD_HTTP_USER_AGENT", "").strip()
    if override:
        return override
    return f"markdd/{get_version()}"


def _headers(extra: Mapping[str, str] | None) -> dict[str, str]:
    headers = {"User-Agent": user_agent()}
    if extra:
        headers.update(extra)
    return headers


def request(
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a request and raise :class:`TransportError` on any failure."""
    try:
        response = requests.request(
            method,
            url,
            headers=_headers(headers),
            timeout=timeout or DEFAULT_TIMEOUT,
            **kwargs,
        )
    except requests.exceptions.SSLError as exc:
        raise TLSCertificateError(_tls_help(url)) from exc
    except requests.exceptions.RequestException as exc:
        raise TransportError(f"Request to '{url}' failed: {exc}") from exc

    if not response.ok:
        detail = (response.text or "").strip().splitlines()
        message = f"Request to '{url}' failed: HTTP {response.status_code}"
        if detail:
            message = f"{message}: {detail[0][:200]}"
        raise TransportError(message)
    return response


def get_bytes(url: str, *, timeout: float | None = None) -> bytes:
    """Fetch a binary resource."""
    return request("GET", url, timeout=timeout).content


__all__ = [
    "DEFAULT_TIMEOUT",
    "TLSCertificateError",
    "get_bytes",
    "request",
    "user_agent",
]
