"""AviationStack flight status adapter.

Implements StatusSourcePort by querying the AviationStack flights API.
Flight numbers are looked up by IATA code first and by ICAO code if the
IATA query has no match.
"""

import logging
from typing import Any

import httpx

from cuckoo.core.errors import NoDataError, UpstreamLookupError
from cuckoo.core.models import StatusReport
from cuckoo.core.ports import StatusSourcePort

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://api.aviationstack.com/v1/flights"


def format_delay(delay: Any) -> str:
    """Render an AviationStack delay value in minutes.

    Args:
        delay: Delay as returned by the API (number or null).

    Returns:
        "N mins", or an empty string for null, zero or non-numeric values.
    """
    if delay is None or isinstance(delay, bool):
        return ""
    if isinstance(delay, float):
        return f"{delay:.0f} mins" if delay else ""
    if isinstance(delay, int):
        return f"{delay} mins" if delay else ""
    return ""


class AviationStackStatusSource(StatusSourcePort):
    """Flight status lookups against AviationStack."""

    def __init__(
        self,
        api_key: str = "",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize AviationStack adapter.

        Args:
            api_key: AviationStack access key. Lookups fail until it is set.
            api_url: Flights endpoint URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key
        self.api_url = api_url
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "AviationStackStatusSource":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.client.aclose()

    async def close(self) -> None:
        """Close the httpx client and clean up resources."""
        await self.client.aclose()

    def set_api_key(self, api_key: str) -> None:
        """Replace the access key used by subsequent lookups."""
        self.api_key = api_key.strip()
        logger.info("AviationStack API key updated")

    async def lookup(self, external_id: str) -> StatusReport:
        """Look up a flight by IATA code, falling back to ICAO.

        Raises:
            NoDataError: If neither code form matched a flight.
            UpstreamLookupError: If the API could not be queried.
        """
        flights = await self._query(external_id, "flight_iata")
        if not flights:
            logger.debug(f"No IATA match for {external_id}, trying ICAO")
            flights = await self._query(external_id, "flight_icao")
        if not flights:
            raise NoDataError(external_id)

        return self._to_report(flights[0])

    async def _query(self, flight: str, field: str) -> list[dict[str, Any]]:
        if not self.api_key:
            raise UpstreamLookupError(
                "AviationStack API key not set", external_id=flight
            )

        try:
            response = await self.client.get(
                self.api_url, params={"access_key": self.api_key, field: flight}
            )
        except httpx.HTTPError as e:
            raise UpstreamLookupError(
                f"Request for {flight} failed: {e}", external_id=flight
            ) from e

        if response.status_code != 200:
            raise UpstreamLookupError(
                f"AviationStack returned {response.status_code} for {flight}",
                external_id=flight,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamLookupError(
                f"Invalid JSON from AviationStack for {flight}: {e}",
                external_id=flight,
            ) from e

        if not isinstance(payload, dict):
            raise UpstreamLookupError(
                f"Unexpected AviationStack payload for {flight}", external_id=flight
            )

        error = payload.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise UpstreamLookupError(
                f"AviationStack error for {flight}: {message}", external_id=flight
            )

        data = payload.get("data") or []
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _to_report(flight: dict[str, Any]) -> StatusReport:
        """Render a flight record into a status report."""
        raw_status = flight.get("flight_status") or ""
        airline = (flight.get("airline") or {}).get("name") or "Unknown airline"
        departure = flight.get("departure") or {}
        arrival = flight.get("arrival") or {}

        status = (
            f"{airline} from {departure.get('airport') or 'unknown'} "
            f"to {arrival.get('airport') or 'unknown'} is {raw_status}."
        )
        dep_delay = format_delay(departure.get("delay"))
        arr_delay = format_delay(arrival.get("delay"))
        if dep_delay:
            status += " Departure delay: " + dep_delay
        if arr_delay:
            status += " Arrival delay: " + arr_delay

        return StatusReport(status=status, raw_status=raw_status)
