"""
HTTP client for the SoMi API, used by the player's persistence boundary.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from core.config import settings
from player.session import BlockCompleted, CheckIn
from services.segments import FlowType

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Non-2xx response, or no response at all (``status_code`` is None)."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class SomiApiClient:
    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.SOMI_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_API_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"SoMi API {method} {path} failed: {e}")
            raise ApiError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            detail = payload.get("detail") or payload.get("error") or response.text
            raise ApiError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
                error_code=payload.get("error_code"),
            )

        if not response.content:
            return {}
        return response.json()

    # Flows -----------------------------------------------------------------

    def generate_flow(
        self,
        polyvagal_state: str,
        duration_minutes: int,
        body_scan_start: bool = False,
        body_scan_end: bool = False,
        use_ai: bool = False,
        local_hour: Optional[int] = None,
    ) -> Dict[str, Any]:
        body = {
            "polyvagal_state": polyvagal_state,
            "duration_minutes": duration_minutes,
            "body_scan_start": body_scan_start,
            "body_scan_end": body_scan_end,
            "use_ai": use_ai,
        }
        if local_hour is not None:
            body["local_hour"] = local_hour
        return self._request("POST", "/flows/generate", json=body)

    def generate_routine(
        self,
        routine_type: Optional[str] = None,
        block_count: int = 6,
        local_hour: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"block_count": block_count}
        if routine_type:
            body["routine_type"] = routine_type
        if local_hour is not None:
            body["local_hour"] = local_hour
        return self._request("POST", "/routines/generate", json=body)

    def blocks_by_names(self, canonical_names: List[str]) -> List[Dict[str, Any]]:
        data = self._request("GET", "/blocks", params={"canonical_names": ",".join(canonical_names)})
        return data.get("blocks", [])

    # Chains ----------------------------------------------------------------

    def create_chain(self, flow_type: FlowType = FlowType.DAILY_FLOW) -> Dict[str, Any]:
        data = self._request("POST", "/chains", json={"flow_type": FlowType(flow_type).value})
        return data["chain"]

    def latest_chain(self, flow_type: Optional[FlowType] = None) -> Optional[Dict[str, Any]]:
        params = {"flow_type": FlowType(flow_type).value} if flow_type else None
        return self._request("GET", "/chains/latest", params=params).get("chain")

    def list_chains(self, limit: int = 30) -> List[Dict[str, Any]]:
        return self._request("GET", "/chains", params={"limit": limit}).get("chains", [])

    def delete_chain(self, chain_id: int) -> bool:
        return bool(self._request("DELETE", f"/chains/{chain_id}").get("success"))

    def save_check_in(self, chain_id: int, check_in: CheckIn) -> Dict[str, Any]:
        body = {
            "chainId": chain_id,
            "energyLevel": check_in.energy_level,
            "safetyLevel": check_in.safety_level,
            "journalEntry": check_in.journal_entry,
            "tags": list(check_in.tags) or None,
        }
        return self._request("POST", "/embodiment-checks", json=body)["check"]

    def save_entry(self, chain_id: int, entry: BlockCompleted) -> Dict[str, Any]:
        body = {
            "chainId": chain_id,
            "blockId": entry.block_id,
            "secondsElapsed": entry.seconds_elapsed,
            "sessionOrder": entry.order_index,
            "section": entry.section.value,
        }
        return self._request("POST", "/chain-entries", json=body)["entry"]
