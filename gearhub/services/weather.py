"""
Weather lookups against the OpenWeather API.

Lookups never raise: without an API key, or when the provider cannot be reached
or answers with something unexpected, a degraded result with ``available=False``
and null readings is returned instead.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings


logger = structlog.get_logger()

COMPASS_POINTS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]

NOT_CONFIGURED = "Weather service not configured"
UNAVAILABLE = "Weather data temporarily unavailable"


def wind_direction(degrees: Optional[float]) -> Optional[str]:
    if degrees is None:
        return None
    normalized = degrees % 360
    # half-up rounding; round() would send 11.25 to N
    index = int(math.floor(normalized / 22.5 + 0.5)) % 16
    return COMPASS_POINTS[index]


def degraded(conditions: str, description: str = "Weather data unavailable") -> Dict[str, Any]:
    return {
        "temperature": None,
        "wind_speed": None,
        "wind_direction": None,
        "conditions": conditions,
        "description": description,
        "humidity": None,
        "pressure": None,
        "timestamp": datetime.now(timezone.utc),
        "available": False,
    }


def _section(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"unexpected {key} payload")
    return value


def _reading(data: dict, timestamp: datetime) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("main"), dict):
        raise ValueError("weather payload has no main readings")
    main = data["main"]
    wind = _section(data, "wind")
    summaries = data.get("weather") or [{}]
    if not isinstance(summaries, list) or not isinstance(summaries[0], dict):
        raise ValueError("unexpected weather payload")
    weather = summaries[0]
    return {
        "temperature": main.get("temp"),
        "wind_speed": wind.get("speed"),
        "wind_direction": wind_direction(wind.get("deg")),
        "conditions": weather.get("main"),
        "description": weather.get("description"),
        "humidity": main.get("humidity"),
        "pressure": main.get("pressure"),
        "timestamp": timestamp,
        "available": True,
    }


def _get(client: Optional[httpx.Client], endpoint: str, latitude: float, longitude: float) -> dict:
    params = {
        "lat": latitude,
        "lon": longitude,
        "appid": settings.openweather_api_key,
        "units": "metric",
    }
    url = f"{settings.openweather_base_url.rstrip('/')}/{endpoint}"
    if client is not None:
        response = client.get(url, params=params, timeout=settings.weather_timeout_seconds)
        response.raise_for_status()
        return response.json()
    with httpx.Client(timeout=settings.weather_timeout_seconds) as c:
        response = c.get(url, params=params)
        response.raise_for_status()
        return response.json()


def get_current_weather(latitude: float, longitude: float, client: Optional[httpx.Client] = None) -> Dict[str, Any]:
    if not settings.openweather_api_key:
        logger.info("weather_disabled", reason="missing_api_key")
        return degraded(NOT_CONFIGURED)
    try:
        data = _get(client, "weather", latitude, longitude)
        return _reading(data, datetime.now(timezone.utc))
    except (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
        logger.warning("weather_lookup_failed", latitude=latitude, longitude=longitude, error=str(e))
        return degraded(UNAVAILABLE)


def get_forecast(latitude: float, longitude: float, client: Optional[httpx.Client] = None) -> Optional[List[Dict[str, Any]]]:
    if not settings.openweather_api_key:
        return None
    try:
        data = _get(client, "forecast", latitude, longitude)
        return [
            _reading(entry, datetime.fromtimestamp(entry["dt"], tz=timezone.utc))
            for entry in data["list"]
        ]
    except (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
        logger.warning("weather_forecast_failed", latitude=latitude, longitude=longitude, error=str(e))
        return None


def snapshot(weather: Dict[str, Any]) -> Dict[str, Any]:
    """Reduced reading stored alongside a usage record."""
    if not weather.get("available"):
        return {"wind_speed": None, "wind_direction": None, "temperature": None, "conditions": None, "available": False}
    return {
        "wind_speed": weather.get("wind_speed"),
        "wind_direction": weather.get("wind_direction"),
        "temperature": weather.get("temperature"),
        "conditions": weather.get("conditions"),
        "available": True,
    }
