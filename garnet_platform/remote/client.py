"""JSON-over-HTTP client for the remote compliance-data API.

Vendors, questionnaires and evidence live behind that API; this backend only
forwards calls to it, passing the caller's bearer token through.

Transport failures and 5xx answers surface as DependencyError. Nothing is
retried here; retry policy belongs to the caller's transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from garnet_platform.errors import DependencyError


def _debug(msg: str) -> None:
    print(f"[remote] {msg}")


@dataclass(frozen=True)
class RemoteResponse:
    status_code: int
    data: Any


class ComplianceApiClient:
    def __init__(self, base_url: str, *, timeout: float = 30.0, session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("compliance_api_url_blank")
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> RemoteResponse:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        _debug(f"{method.upper()} {url}")
        try:
            r = self._session.request(
                method.upper(),
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _debug(f"{method.upper()} {url} failed: {e.__class__.__name__}")
            raise DependencyError("Compliance API unreachable") from e

        if r.status_code >= 500:
            _debug(f"{method.upper()} {url} -> {r.status_code}")
            raise DependencyError(f"Compliance API error {r.status_code}")

        try:
            data = r.json() if r.content else None
        except ValueError as e:
            raise DependencyError("Compliance API returned invalid JSON") from e

        return RemoteResponse(status_code=r.status_code, data=data)
