"""
Pure helpers for turning OpenWeather payloads into reports.
"""
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


ICON_URL_TEMPLATE = "https://openweathermap.org/img/wn/{code}@2x.png"


def kelvin_to_celsius(kelvin: float) -> int:
    """Kelvin to whole degrees Celsius, halves rounded up (300.15 K -> 27)."""
    return int(math.floor(kelvin - 273.15 + 0.5))


def icon_url(code: str) -> str:
    return ICON_URL_TEMPLATE.format(code=code)


@dataclass
class WeatherReport:
    location: str
    country: Optional[str]
    temperature: int
    feels_like: int
    humidity: float
    wind_speed: float
    description: str
    icon: str
    observed_at: datetime


@dataclass
class ForecastHour:
    time: str
    temperature: int
    feels_like: int
    humidity: float
    wind_speed: float
    description: str
    icon: str


@dataclass
class ForecastDay:
    date: str
    min_temp: int
    max_temp: int
    description: str
    icon: str
    hourly: List[ForecastHour] = field(default_factory=list)


@dataclass
class Forecast:
    location: str
    country: Optional[str]
    days: List[ForecastDay]


def process_weather_data(data: Dict[str, Any]) -> WeatherReport:
    """
    Normalize a /weather response.

    Raises:
        KeyError / IndexError / TypeError: payload is missing required fields
    """
    main = data["main"]
    condition = data["weather"][0]
    return WeatherReport(
        location=data.get("name", ""),
        country=(data.get("sys") or {}).get("country"),
        temperature=kelvin_to_celsius(main["temp"]),
        feels_like=kelvin_to_celsius(main["feels_like"]),
        humidity=main["humidity"],
        wind_speed=data["wind"]["speed"],
        description=condition["description"],
        icon=condition["icon"],
        observed_at=datetime.fromtimestamp(data["dt"], tz=timezone.utc),
    )


def _most_frequent(descriptions: List[str]) -> str:
    # The first description to reach the highest running count wins ties
    counts: Dict[str, int] = {}
    best = descriptions[0]
    best_count = 1
    for description in descriptions:
        counts[description] = counts.get(description, 0) + 1
        if counts[description] > best_count:
            best = description
            best_count = counts[description]
    return best


def group_forecast(data: Dict[str, Any]) -> Forecast:
    """Collapse a 3-hourly /forecast response into per-day summaries (UTC days)."""
    by_day: "OrderedDict[str, List[ForecastHour]]" = OrderedDict()

    for item in data.get("list", []):
        moment = datetime.fromtimestamp(item["dt"], tz=timezone.utc)
        condition = item["weather"][0]
        by_day.setdefault(moment.date().isoformat(), []).append(ForecastHour(
            time=moment.strftime("%H:%M"),
            temperature=kelvin_to_celsius(item["main"]["temp"]),
            feels_like=kelvin_to_celsius(item["main"]["feels_like"]),
            humidity=item["main"]["humidity"],
            wind_speed=item["wind"]["speed"],
            description=condition["description"],
            icon=condition["icon"],
        ))

    days = []
    for date, hours in by_day.items():
        temperatures = [h.temperature for h in hours]
        description = _most_frequent([h.description for h in hours])
        icon = next((h.icon for h in hours if h.description == description), hours[0].icon)
        days.append(ForecastDay(
            date=date,
            min_temp=min(temperatures),
            max_temp=max(temperatures),
            description=description,
            icon=icon,
            hourly=hours,
        ))

    city = data.get("city") or {}
    return Forecast(location=city.get("name", ""), country=city.get("country"), days=days)
