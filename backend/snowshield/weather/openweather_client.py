"""
Async client for the OpenWeather current-weather and forecast APIs.
"""
from typing import Any, Dict, Optional, Tuple

import httpx

from snowshield.config_loader import Settings, get_settings
from snowshield.errors import NetworkError, log_error
from snowshield.logging_config import get_logger
from snowshield.weather.weather_utils import (
    Forecast,
    WeatherReport,
    group_forecast,
    process_weather_data,
)

logger = get_logger(__name__)


class WeatherClient:
    """
    Looks up weather by coordinates, city name or postal code.

    A transport can be injected (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        default_country_code: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.api_key = api_key if api_key is not None else settings.openweather_api_key
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.weather_timeout_seconds
        self.default_country_code = default_country_code or settings.default_country_code
        self.transport = transport

    async def _get(self, path: str, params: Dict[str, Any], context: str) -> Dict[str, Any]:
        if not self.api_key:
            error = NetworkError("OPENWEATHER_API_KEY is not configured", code="failed-precondition")
            log_error(logger, error, context)
            raise error

        query = dict(params, appid=self.api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/{path}", params=query)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            code = "not-found" if status == 404 else "unavailable"
            error = NetworkError(
                f"Weather lookup failed with HTTP {status}",
                code=code,
                context={"path": path, "status": status},
            )
            log_error(logger, error, context)
            raise error from e
        except (httpx.HTTPError, ValueError) as e:
            error = NetworkError(f"Weather lookup failed: {e}", context={"path": path})
            log_error(logger, error, context)
            raise error from e

    def _report(self, data: Dict[str, Any], context: str) -> WeatherReport:
        try:
            return process_weather_data(data)
        except (KeyError, IndexError, TypeError) as e:
            error = NetworkError(f"Unexpected weather payload: missing {e}", context={"operation": context})
            log_error(logger, error, context)
            raise error from e

    async def current_by_coords(self, lat: float, lon: float) -> WeatherReport:
        data = await self._get("weather", {"lat": lat, "lon": lon}, "currentByCoords")
        return self._report(data, "currentByCoords")

    async def current_by_city(self, city: str) -> WeatherReport:
        data = await self._get("weather", {"q": city}, "currentByCity")
        return self._report(data, "currentByCity")

    async def current_by_zip(self, zip_code: str, country_code: Optional[str] = None) -> WeatherReport:
        country = country_code or self.default_country_code
        data = await self._get("weather", {"zip": f"{zip_code},{country}"}, "currentByZip")
        return self._report(data, "currentByZip")

    async def forecast_by_coords(self, lat: float, lon: float) -> Forecast:
        data = await self._get("forecast", {"lat": lat, "lon": lon}, "forecastByCoords")
        try:
            return group_forecast(data)
        except (KeyError, IndexError, TypeError) as e:
            error = NetworkError(f"Unexpected forecast payload: missing {e}")
            log_error(logger, error, "forecastByCoords")
            raise error from e

    async def lookup_for_profile(
        self,
        pincode: Optional[str],
        coords: Optional[Tuple[float, float]] = None,
    ) -> Optional[WeatherReport]:
        """
        Weather for a user: by pincode first, falling back to coordinates.

        Returns None when neither is available. A failed pincode lookup
        without coordinates re-raises.
        """
        if pincode:
            try:
                return await self.current_by_zip(pincode)
            except NetworkError:
                if coords is None:
                    raise
                logger.warning(f"Weather by pincode {pincode} failed, falling back to coordinates")
        if coords is not None:
            return await self.current_by_coords(*coords)
        return None
