from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from booking_wizard import config
from booking_wizard.errors import GatewayError, UnrecognizedResponseShape
from booking_wizard.schemas_wizard import (
    BookingAggregate,
    BookingHeaderDraft,
    BookingRecord,
    GuaranteeFields,
    GuaranteeRecord,
    GuestFields,
    GuestRecord,
    RoomDayDraft,
    RoomDayRecord,
    RoomFields,
    RoomRecord,
    ServiceFields,
    ServiceRecord,
)
from booking_wizard.services.gateways.aggregate_parser import parse_booking_aggregate, unwrap_entity, unwrap_list
from booking_wizard.services.gateways.base import BookingGateway, build_payload, require_parent_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _wire_keys(attrs: Dict[str, Any]) -> Dict[str, Any]:
    return {(to_camel(key) if "_" in key else key): value for key, value in attrs.items()}


def _to_record(model: Type[ModelT], payload: Dict[str, Any], raw: Any, **known: Any) -> ModelT:
    """Build the returned record: server attributes win over what was sent."""

    data = _wire_keys(known)
    data.update(payload)
    if raw:
        data.update(_wire_keys(unwrap_entity(raw)))
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise UnrecognizedResponseShape(
            f"Channel API returned an unusable {model.__name__}",
            meta={"model": model.__name__, "errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


class HttpBookingGateway(BookingGateway):
    """Channel-manager REST adapter.

    Behaviour:
      - One httpx.AsyncClient per call, bearer token from configuration.
      - Timeouts map to TIMEOUT, connection problems to PROVIDER_UNAVAILABLE.
      - 401/403 map to AUTH_FAILED, 404 to NOT_FOUND, 429/5xx to
        PROVIDER_UNAVAILABLE and any other non-2xx to UNKNOWN_ERROR.
      - Entity responses are unwrapped from whichever envelope the API used.
    """

    provider_name = "channel_api"

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or config.CHANNEL_API_BASE_URL).rstrip("/")
        self.token = (token if token is not None else config.CHANNEL_API_TOKEN).strip()
        self.timeout_s = timeout_s if timeout_s is not None else config.CHANNEL_API_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "BookingWizard/1.0",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        meta: Dict[str, Any] = {"provider": self.provider_name, "method": method, "endpoint": url}
        started = time.perf_counter()

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s),
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                resp = await client.request(method, url, json=json)
        except httpx.TimeoutException:
            meta["latency_ms"] = int((time.perf_counter() - started) * 1000)
            logger.warning("Channel API timeout: %s %s", method, url)
            raise GatewayError(code="TIMEOUT", message="Channel API request timed out", http_status=504, meta=meta)
        except httpx.RequestError as e:
            meta["latency_ms"] = int((time.perf_counter() - started) * 1000)
            logger.warning("Channel API unreachable: %s %s (%s)", method, url, e)
            raise GatewayError(
                code="PROVIDER_UNAVAILABLE",
                message=f"Channel API unreachable: {str(e) or 'request error'}",
                http_status=503,
                meta=meta,
            )

        status = resp.status_code
        meta["status_code"] = status
        meta["latency_ms"] = int((time.perf_counter() - started) * 1000)

        if 200 <= status <= 299:
            logger.debug("Channel API %s %s -> %s in %sms", method, url, status, meta["latency_ms"])
            if status == 204 or not resp.content:
                return None
            try:
                return resp.json()
            except ValueError:
                raise GatewayError(
                    code="UNRECOGNIZED_RESPONSE",
                    message="Channel API returned a non-JSON body",
                    meta=meta,
                )

        if status == 404 and allow_not_found:
            return None

        logger.warning("Channel API %s %s failed with HTTP %s", method, url, status)
        meta["body"] = resp.text[:500]
        if status in (401, 403):
            raise GatewayError(code="AUTH_FAILED", message=f"Channel API rejected credentials (HTTP {status})", http_status=502, meta=meta)
        if status == 404:
            raise GatewayError(code="NOT_FOUND", message="Channel API resource not found", http_status=404, meta=meta)
        if status == 429 or 500 <= status <= 599:
            raise GatewayError(
                code="PROVIDER_UNAVAILABLE",
                message=f"Channel API temporarily unavailable (HTTP {status})",
                http_status=503,
                meta=meta,
            )
        raise GatewayError(code="UNKNOWN_ERROR", message=f"Unexpected channel API response (HTTP {status})", meta=meta)

    # Bookings ----------------------------------------------------------------

    async def create_booking(self, header: BookingHeaderDraft) -> BookingRecord:
        payload = build_payload("booking", header, action="create")
        raw = await self._request("POST", "/bookings", json=payload)
        return _to_record(BookingRecord, payload, raw)

    async def update_booking(self, booking_id: str, header: BookingHeaderDraft) -> BookingRecord:
        payload = build_payload("booking", header, action="update")
        raw = await self._request("PATCH", f"/bookings/{booking_id}", json=payload)
        return _to_record(BookingRecord, payload, raw, id=booking_id)

    async def get_booking_aggregate(self, booking_id: str) -> Optional[BookingAggregate]:
        raw = await self._request("GET", f"/bookings/{booking_id}", allow_not_found=True)
        if raw is None:
            return None
        return parse_booking_aggregate(raw)

    # Rooms -------------------------------------------------------------------

    async def create_room(self, booking_id: str, room: RoomFields) -> RoomRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="room")
        payload = build_payload("room", room, action="create", parents={"booking_id": booking_id})
        raw = await self._request("POST", "/booking-rooms", json=payload)
        return _to_record(RoomRecord, payload, raw)

    async def update_room(self, room_id: str, room: RoomFields) -> RoomRecord:
        payload = build_payload("room", room, action="update")
        raw = await self._request("PATCH", f"/booking-rooms/{room_id}", json=payload)
        return _to_record(RoomRecord, payload, raw, id=room_id)

    async def delete_room(self, room_id: str) -> None:
        await self._request("DELETE", f"/booking-rooms/{room_id}")

    async def create_room_day(self, room_id: str, day: RoomDayDraft) -> RoomDayRecord:
        room_id = require_parent_id(room_id, prerequisite="room_id", resource="room day")
        payload = build_payload("room_day", day, action="create", parents={"booking_room_id": room_id})
        raw = await self._request("POST", "/booking-room-days", json=payload)
        return _to_record(RoomDayRecord, payload, raw)

    async def update_room_day(self, day_id: str, day: RoomDayDraft) -> RoomDayRecord:
        payload = build_payload("room_day", day, action="update")
        raw = await self._request("PATCH", f"/booking-room-days/{day_id}", json=payload)
        return _to_record(RoomDayRecord, payload, raw, id=day_id)

    async def delete_room_day(self, day_id: str) -> None:
        await self._request("DELETE", f"/booking-room-days/{day_id}")

    # Services ----------------------------------------------------------------

    async def create_service(self, booking_id: str, service: ServiceFields) -> ServiceRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="service")
        payload = build_payload("service", service, action="create", parents={"booking_id": booking_id})
        raw = await self._request("POST", "/booking-services", json=payload)
        return _to_record(ServiceRecord, payload, raw)

    # Guarantee ---------------------------------------------------------------

    async def create_guarantee(self, booking_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="guarantee")
        payload = build_payload("guarantee", guarantee, action="create", parents={"booking_id": booking_id})
        raw = await self._request("POST", "/booking-guarantees", json=payload)
        return _to_record(GuaranteeRecord, payload, raw)

    async def update_guarantee(self, guarantee_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        payload = build_payload("guarantee", guarantee, action="update")
        raw = await self._request("PATCH", f"/booking-guarantees/{guarantee_id}", json=payload)
        return _to_record(GuaranteeRecord, payload, raw, id=guarantee_id)

    # Guests ------------------------------------------------------------------

    async def create_guest(self, booking_id: str, guest: GuestFields) -> GuestRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="guest")
        payload = build_payload("guest", guest, action="create", parents={"booking_id": booking_id})
        raw = await self._request("POST", "/booking-guests", json=payload)
        return _to_record(GuestRecord, payload, raw)

    async def update_guest(self, guest_id: str, guest: GuestFields) -> GuestRecord:
        payload = build_payload("guest", guest, action="update")
        raw = await self._request("PATCH", f"/booking-guests/{guest_id}", json=payload)
        return _to_record(GuestRecord, payload, raw, id=guest_id)

    async def delete_guest(self, guest_id: str) -> None:
        await self._request("DELETE", f"/booking-guests/{guest_id}")

    async def list_guests_by_booking(self, booking_id: str) -> List[GuestRecord]:
        raw = await self._request("GET", f"/booking-guests/booking/{booking_id}")
        if raw is None:
            return []
        return [_to_record(GuestRecord, {"bookingId": booking_id}, item) for item in unwrap_list(raw)]
