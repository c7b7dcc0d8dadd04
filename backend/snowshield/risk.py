"""
Avalanche risk from current weather.

A fixed decision table, evaluated top to bottom; the first matching
rule wins. Thresholds are strict (<, >) except the warm rule (>=).
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Risk:
    level: str
    description: str
    color: str


WET_SNOW = Risk("High", "Wet snow conditions with temperatures around freezing point", "red")
WIND_DRIFT = Risk("High", "Strong winds can create dangerous snow drifts and cornices", "red")
WEAK_LAYERS = Risk("Medium", "Very cold temperatures can create weak snow layers", "amber")
STABLE = Risk("Low", "Warmer temperatures typically stabilize snowpack", "green")
STANDARD = Risk("Low to Medium", "Standard winter conditions. Stay alert for changing weather.", "yellow")
UNKNOWN = Risk("Unknown", "Weather data unavailable", "gray")


def risk_for(temperature_c: float, wind_speed_ms: float, humidity_pct: float) -> Risk:
    if 0 < temperature_c < 5 and humidity_pct > 80:
        return WET_SNOW
    if wind_speed_ms > 30:
        return WIND_DRIFT
    if temperature_c < -10:
        return WEAK_LAYERS
    if temperature_c >= 5:
        return STABLE
    return STANDARD


def risk_for_weather(weather) -> Risk:
    """Risk for a WeatherReport, or UNKNOWN when there is no report."""
    if weather is None:
        return UNKNOWN
    return risk_for(weather.temperature, weather.wind_speed, weather.humidity)


RISK_LEVEL_COLORS = {
    "low": "success",
    "medium": "warning",
    "high": "danger",
    "extreme": "danger-dark",
}


def risk_level_color(level: Optional[str]) -> str:
    """Badge color for an incident riskLevel."""
    return RISK_LEVEL_COLORS.get((level or "").lower(), "primary")
