import json
from collections.abc import Mapping
from http.client import HTTPException, RemoteDisconnected
from typing import Any
from urllib import error, parse, request

from calextract.services.event_models import LocationDetails


class GeocodingError(Exception):
    pass


class GooglePlacesGeocodingClient:
    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: float = 5.0,
        api_base_url: str = "https://maps.googleapis.com/maps/api/place",
    ) -> None:
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.api_base_url = api_base_url.rstrip("/")

    def lookup(self, query: str) -> LocationDetails | None:
        cleaned_query = query.strip()
        if not cleaned_query:
            return None
        params = parse.urlencode(
            {
                "input": cleaned_query,
                "inputtype": "textquery",
                "fields": "formatted_address,geometry,name",
                "key": self.api_key,
            },
        )
        payload = self._request_json(f"{self.api_base_url}/findplacefromtext/json?{params}")
        status = payload.get("status")
        if status == "ZERO_RESULTS":
            return None
        if status != "OK":
            raise GeocodingError(f"Places API returned status {status or 'unknown'}.")

        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return None
        first_candidate = candidates[0]
        if not isinstance(first_candidate, Mapping):
            raise GeocodingError("Places API candidate is invalid.")

        address = first_candidate.get("formatted_address")
        if not isinstance(address, str) or not address.strip():
            return None
        return LocationDetails(
            name=cleaned_query,
            address=address.strip(),
            city=self._extract_component(first_candidate, "locality"),
            state=self._extract_component(first_candidate, "administrative_area_level_1"),
            country=self._extract_component(first_candidate, "country"),
        )

    def _extract_component(self, candidate: Mapping[str, Any], component_type: str) -> str | None:
        components = candidate.get("address_components")
        if not isinstance(components, list):
            return None
        for component in components:
            if not isinstance(component, Mapping):
                continue
            types = component.get("types")
            if isinstance(types, list) and component_type in types:
                long_name = component.get("long_name")
                if isinstance(long_name, str) and long_name.strip():
                    return long_name.strip()
        return None

    def _request_json(self, target: str) -> dict[str, Any]:
        req = request.Request(target, method="GET")
        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise GeocodingError("Places API request timed out.") from exc
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise GeocodingError(
                f"Places API HTTP {exc.code}: {body or 'empty response body'}",
            ) from exc
        except error.URLError as exc:
            raise GeocodingError(f"Places API connection error: {exc.reason}") from exc
        except RemoteDisconnected as exc:
            raise GeocodingError(
                "Places API connection was closed before sending a response.",
            ) from exc
        except (HTTPException, OSError) as exc:
            raise GeocodingError(f"Places API connection error: {exc}") from exc

        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise GeocodingError("Places API returned invalid JSON.") from exc

        if not isinstance(parsed_body, dict):
            raise GeocodingError("Places API response is not a JSON object.")
        return parsed_body
