# backend/hm_core/admissions/integrations.py
"""
HTTP client for the downstream medical-records service that wants to know
about finished stays.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings


class DownstreamSyncFailed(Exception):
    """The records service did not accept a discharge notification."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DischargeSyncGateway:
    url: str
    api_key: str = ""
    timeout: float = 5.0

    @classmethod
    def from_settings(cls) -> "DischargeSyncGateway":
        return cls(
            url=getattr(settings, "DISCHARGE_SYNC_URL", "") or "",
            api_key=getattr(settings, "DISCHARGE_SYNC_API_KEY", "") or "",
            timeout=float(getattr(settings, "DISCHARGE_SYNC_TIMEOUT", 5.0)),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def send(self, payload: dict[str, Any]) -> None:
        headers = {"x-internal-api-key": self.api_key, "Accept": "application/json"}
        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DownstreamSyncFailed(f"Discharge sync request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:500]
            raise DownstreamSyncFailed(
                f"Discharge sync rejected with HTTP {response.status_code}: {body}",
                status_code=response.status_code,
            )
