"""HTTP client for the marketplace backend endpoints the scheduling core consumes."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import httpx
from pydantic import SecretStr

from .config import Settings

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Base error for backend request failures."""


class BackendAuthError(BackendError):
    """Raised when backend rejects authentication."""


class BackendNotFoundError(BackendError):
    """Raised when backend resource is not found."""


class BackendConnectionError(BackendError):
    """Raised when backend connection fails."""


class BackendRequestError(BackendError):
    """Raised for non-auth backend errors."""

    def __init__(self, message: str, *, status_code: int, user_message: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.user_message = user_message


def _secret_value(value: SecretStr | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return str(value)


def extract_error_message(payload: Any) -> str | None:
    """Pull a human-readable message out of a backend error body."""
    if not isinstance(payload, dict):
        return None

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        return "\n".join(str(item) for item in errors)
    if isinstance(errors, dict) and errors:
        parts: list[str] = []
        for value in errors.values():
            if isinstance(value, list):
                parts.extend(str(item) for item in value)
            elif isinstance(value, str):
                parts.append(value)
        if parts:
            return "\n".join(parts)

    for key in ("message", "title"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class MarketplaceClient:
    """HTTP client for the marketplace backend API."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.http = http or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(
                connect=10.0,
                read=settings.request_timeout_seconds,
                write=10.0,
                pool=10.0,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _build_headers(self, request_id: str) -> dict[str, str]:
        headers = {"X-Request-Id": request_id}
        token = _secret_value(self.settings.api_service_token).strip()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | httpx.Timeout | None = None,
    ) -> Any:
        request_id = str(uuid4())
        request_headers = self._build_headers(request_id)
        if headers:
            request_headers.update(headers)
        request_kwargs: dict[str, Any] = {
            "params": params,
            "json": json,
            "headers": request_headers,
        }
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        try:
            response = await self.http.request(method, path, **request_kwargs)
        except httpx.TimeoutException as exc:
            timeout_value: float | None = None
            if isinstance(timeout, (int, float)):
                timeout_value = float(timeout)
            elif isinstance(timeout, httpx.Timeout):
                timeout_value = timeout.read
            else:
                timeout_value = self.http.timeout.read
            if timeout_value is not None:
                message = f"backend_timeout: Request to {path} timed out after {timeout_value}s"
            else:
                message = f"backend_timeout: Request to {path} timed out"
            raise BackendConnectionError(message) from exc
        except httpx.HTTPError as exc:
            raise BackendConnectionError(f"backend_connection_failed: {exc}") from exc

        if response.status_code in {401, 403}:
            raise BackendAuthError("backend_auth_failed")
        if response.status_code == 404:
            raise BackendNotFoundError("backend_not_found")
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            user_message = extract_error_message(body)
            logger.info(
                "Backend rejected %s %s (request_id=%s, status=%s): %s",
                method,
                path,
                request_id,
                response.status_code,
                user_message,
            )
            raise BackendRequestError(
                f"backend_error_{response.status_code}",
                status_code=response.status_code,
                user_message=user_message,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text}

    async def get_available_time_slots(
        self,
        mentor_user_id: str,
        offering_id: str,
        day: date,
        *,
        timeout: float | None = None,
    ) -> Any:
        return await self.call(
            "GET",
            f"/mentors/{quote(mentor_user_id)}/available-time-slots",
            params={"offeringId": offering_id, "date": day.isoformat()},
            timeout=timeout,
        )

    async def reschedule_booking(
        self,
        booking_id: str,
        *,
        new_start_at: datetime,
        idempotency_key: str,
    ) -> Any:
        return await self.call(
            "POST",
            f"/bookings/{quote(booking_id)}/reschedule",
            json={"newStartAt": _iso(new_start_at)},
            headers={"Idempotency-Key": idempotency_key},
        )

    async def approve_reschedule(self, booking_id: str) -> Any:
        return await self.call("POST", f"/bookings/{quote(booking_id)}/reschedule/approve")

    async def reject_reschedule(self, booking_id: str) -> Any:
        return await self.call("POST", f"/bookings/{quote(booking_id)}/reschedule/reject")

    async def create_booking(
        self,
        *,
        mentor_user_id: str,
        offering_id: str,
        start_at: datetime,
        duration_min: int,
        idempotency_key: str,
        notes: str | None = None,
    ) -> Any:
        payload: dict[str, Any] = {
            "mentorUserId": mentor_user_id,
            "offeringId": offering_id,
            "startAt": _iso(start_at),
            "durationMin": duration_min,
        }
        if notes:
            payload["notes"] = notes
        return await self.call(
            "POST",
            "/bookings",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )

    async def cancel_booking(self, booking_id: str, reason: str) -> Any:
        return await self.call(
            "POST",
            f"/bookings/{quote(booking_id)}/cancel",
            json={"reason": reason},
        )

    async def cancel_class_enrollment(self, class_id: str, reason: str) -> Any:
        return await self.call(
            "POST",
            f"/classes/{quote(class_id)}/cancel",
            json={"reason": reason},
        )
