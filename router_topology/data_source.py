"""
Dashboard API Client

Read-only access to the router dashboard's HTTP API. Every fetch returns
``None`` on failure; reporting the failure is this module's job, substituting
placeholders is the graph builder's.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import requests

from .models import FeatureFlags, RouterDescriptor

logger = logging.getLogger(__name__)

DEVICE_COLUMNS = [
    "id",
    "name",
    "isOnline",
    "connectionType",
    "deviceType",
    "ipAddress",
    "macAddress",
    "downloadSpeed",
    "uploadSpeed",
    "aimeshNodeMac",
]


def devices_frame(records: Optional[List[Dict[str, Any]]]) -> pd.DataFrame:
    """Normalize a raw device list into a frame with every expected column.

    Row order is the upstream order; missing rates become 0.0 and a missing
    online flag is treated as online, matching the dashboard's defaults.
    """
    df = pd.DataFrame.from_records(records or [])
    for column in DEVICE_COLUMNS:
        if column not in df.columns:
            df[column] = None

    df = df[DEVICE_COLUMNS + [c for c in df.columns if c not in DEVICE_COLUMNS]]
    df["downloadSpeed"] = pd.to_numeric(df["downloadSpeed"], errors="coerce").fillna(
        0.0
    )
    df["uploadSpeed"] = pd.to_numeric(df["uploadSpeed"], errors="coerce").fillna(0.0)
    df["isOnline"] = df["isOnline"].map(lambda v: True if v is None else bool(v))
    df = df.astype(object).where(df.notna(), None)
    return df.reset_index(drop=True)


def parse_mesh_peers(raw: Any) -> List[str]:
    """Peers arrive as a JSON-array string, a list, or nothing."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unparseable aimeshPeers value: %r", raw)
            return []
    if not isinstance(raw, list):
        logger.warning("Ignoring aimeshPeers of type %s", type(raw).__name__)
        return []
    return [str(peer) for peer in raw if peer not in (None, "")]


def parse_router_status(payload: Optional[Dict[str, Any]]) -> Optional[RouterDescriptor]:
    if not payload:
        return None
    return RouterDescriptor(
        model=payload.get("model") or "Router",
        ip_address=payload.get("ipAddress") or "0.0.0.0",
        is_online=bool(payload.get("isOnline", True)),
    )


def parse_features(
    payload: Optional[Dict[str, Any]]
) -> Tuple[Optional[FeatureFlags], List[str]]:
    """Return the feature flags and the ordered mesh-peer list."""
    if not payload:
        return None, []

    peers = parse_mesh_peers(payload.get("aimeshPeers"))
    if "meshIsActive" in payload:
        mesh_is_active = bool(payload["meshIsActive"])
    else:
        mesh_is_active = bool(payload.get("aimeshIsMaster", True)) and (
            bool(peers) or (payload.get("aimeshNodeCount") or 0) > 0
        )
    return FeatureFlags(mesh_is_active=mesh_is_active), peers


class RefreshGate:
    """
    Hands out one ticket per fetch and per source. A fetch may only apply its
    result while its ticket is the newest one issued for that source, so a
    slow response never lands on top of a newer one.
    """

    def __init__(self):
        self._latest: Dict[str, int] = {}
        self._lock = threading.Lock()

    def begin(self, source: str) -> int:
        with self._lock:
            ticket = self._latest.get(source, 0) + 1
            self._latest[source] = ticket
            return ticket

    def is_current(self, source: str, ticket: int) -> bool:
        with self._lock:
            return self._latest.get(source) == ticket


class DashboardApiClient:
    ENDPOINTS = {
        "router": "/api/router/status",
        "devices": "/api/devices",
        "features": "/api/router/features",
    }

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_json(self, source: str) -> Optional[Any]:
        url = f"{self.base_url}{self.ENDPOINTS[source]}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Fetch failed for %s (%s): %s", source, url, e)
            return None

    def fetch_router(self) -> Optional[RouterDescriptor]:
        payload = self._get_json("router")
        return parse_router_status(payload if isinstance(payload, dict) else None)

    def fetch_devices(self) -> Optional[pd.DataFrame]:
        payload = self._get_json("devices")
        if payload is None:
            return None
        if not isinstance(payload, list):
            logger.warning("Expected a device list, got %s", type(payload).__name__)
            return None
        return devices_frame(payload)

    def fetch_features(self) -> Tuple[Optional[FeatureFlags], List[str]]:
        payload = self._get_json("features")
        return parse_features(payload if isinstance(payload, dict) else None)
