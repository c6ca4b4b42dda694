"""MetaLedger API client."""

from typing import Any, Optional

import requests


class MetaLedgerError(Exception):
    """Error response from the API, carrying its machine-readable code."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[dict] = None):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class MetaLedgerClient:
    """Client for the MetaLedger API."""

    def __init__(self, api_key: str, base_url: str = "http://localhost:8000", session: Optional[requests.Session] = None):
        """Initialize client."""
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"x-api-key": api_key})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                response.raise_for_status()
            details = {k: v for k, v in body.items() if k not in ("error", "detail")}
            raise MetaLedgerError(
                response.status_code,
                body.get("error", "http_error"),
                str(body.get("detail", "")),
                details,
            )
        return response.json()

    # Reads

    def get_state(self, asset_id: int, suppress: bool = True) -> dict:
        """Resolved metadata state of an asset."""
        return self._request(
            "GET", f"/v1/assets/{asset_id}/metadata/state", params={"suppress": str(suppress).lower()}
        )

    def get_editable_fields(self, asset_id: int) -> list:
        return self._request("GET", f"/v1/assets/{asset_id}/metadata/editable")

    def list_pending(self, asset_id: int) -> list:
        return self._request("GET", f"/v1/assets/{asset_id}/metadata/pending")

    def get_history(self, asset_id: int, field_id: Optional[int] = None) -> list:
        params = {"field_id": field_id} if field_id is not None else None
        return self._request("GET", f"/v1/assets/{asset_id}/metadata/history", params=params)

    # Writes and review

    def write_value(self, asset_id: int, field_id: int, value: Any, override_intent: bool = False) -> dict:
        """Write a user value; the response says whether it is pending."""
        payload = {"field_id": field_id, "value": value, "override_intent": override_intent}
        return self._request("POST", f"/v1/assets/{asset_id}/metadata", json=payload)

    def write_machine_value(
        self,
        asset_id: int,
        field_id: int,
        value: Any,
        source: str = "automatic",
        confidence: Optional[float] = None,
    ) -> dict:
        payload = {"field_id": field_id, "value": value, "source": source, "confidence": confidence}
        return self._request("POST", f"/v1/assets/{asset_id}/metadata/machine", json=payload)

    def approve(self, entry_id: int) -> dict:
        return self._request("POST", f"/v1/metadata/{entry_id}/approve")

    def reject(self, entry_id: int) -> dict:
        return self._request("POST", f"/v1/metadata/{entry_id}/reject")

    def edit_and_approve(self, entry_id: int, value: Any, override_intent: bool = False) -> dict:
        payload = {"value": value, "override_intent": override_intent}
        return self._request("POST", f"/v1/metadata/{entry_id}/edit-approve", json=payload)

    def override(self, asset_id: int, field_id: int) -> dict:
        """Freeze a hybrid field at its automatic value."""
        return self._request("POST", f"/v1/assets/{asset_id}/metadata/{field_id}/override")

    def revert(self, asset_id: int, field_id: int) -> dict:
        return self._request("POST", f"/v1/assets/{asset_id}/metadata/{field_id}/revert")

    # Candidates

    def list_candidates(self, asset_id: int) -> list:
        return self._request("GET", f"/v1/assets/{asset_id}/candidates")

    def record_candidate(
        self, asset_id: int, field_id: int, value: Any, confidence: Optional[float] = None, source: str = "ai"
    ) -> dict:
        payload = {"field_id": field_id, "value": value, "confidence": confidence, "source": source}
        return self._request("POST", f"/v1/assets/{asset_id}/candidates", json=payload)

    def approve_candidate(self, candidate_id: int) -> dict:
        return self._request("POST", f"/v1/candidates/{candidate_id}/approve")

    def edit_and_approve_candidate(self, candidate_id: int, value: Any, override_intent: bool = False) -> dict:
        payload = {"value": value, "override_intent": override_intent}
        return self._request("POST", f"/v1/candidates/{candidate_id}/edit-approve", json=payload)

    def reject_candidate(self, candidate_id: int) -> dict:
        return self._request("POST", f"/v1/candidates/{candidate_id}/reject")

    def defer_candidate(self, candidate_id: int) -> dict:
        return self._request("POST", f"/v1/candidates/{candidate_id}/defer")

    # Bulk

    def bulk_preview(self, asset_ids: list[int], operation: str, payload: dict) -> dict:
        """Preview a bulk operation; returns the diff and a single-use token."""
        body = {"asset_ids": asset_ids, "operation": operation, "payload": payload}
        return self._request("POST", "/v1/metadata/bulk/preview", json=body)

    def bulk_execute(self, token: str) -> dict:
        return self._request("POST", "/v1/metadata/bulk/execute", json={"token": token})
