"""Distance and formatting helpers shared by the resolver and the searches."""
import math

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi, dlam = math.radians(lat2 - lat1), math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def quantize(value: float, precision: int = 3) -> str:
    """Fixed-precision text form; 3 decimals is roughly 110 m of latitude."""
    return f"{round(value, precision):.{precision}f}"


def coordinate_key(lat: float, lon: float, precision: int = 3) -> str:
    return f"{quantize(lat, precision)}:{quantize(lon, precision)}"


def capitalize_first(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:].replace("_", " ")
