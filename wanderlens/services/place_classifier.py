"""
Normalization of provider results into ``Place``.

Maps OSM tags and TomTom categories to a human ``kind`` label and an icon,
picks a display name and measures the distance from the query point.
"""

from typing import Optional

from wanderlens.schemas.location import Coordinate
from wanderlens.schemas.place import Place, PlaceCategory, RawPlace
from wanderlens.services.geo import capitalize_first, format_distance, haversine_distance

DEFAULT_ICONS = {
    PlaceCategory.ATTRACTION: "⭐",
    PlaceCategory.FOOD: "🍽️",
    PlaceCategory.FREE: "🌳",
    PlaceCategory.SERVICE: "🛎️",
    PlaceCategory.TRANSIT: "🚉",
}

DEFAULT_KINDS = {
    PlaceCategory.ATTRACTION: "Attraction",
    PlaceCategory.FOOD: "Restaurant",
    PlaceCategory.FREE: "Park",
    PlaceCategory.SERVICE: "Service",
    PlaceCategory.TRANSIT: "Station",
}

FOOD_ICONS = {
    "restaurant": "🍽️",
    "cafe": "☕",
    "bar": "🍸",
    "fast_food": "🍔",
}

SERVICE_TYPES = {
    "toilets": ("Toilet", "🚻"),
    "atm": ("ATM", "🏧"),
    "pharmacy": ("Pharmacy", "💊"),
    "police": ("Police", "👮"),
    "hospital": ("Hospital", "🏥"),
}

# TomTom classification codes worth a specific label
TOMTOM_CODE_KINDS = {
    "ATM": ("ATM", "🏧"),
    "PHARMACY": ("Pharmacy", "💊"),
    "POLICE_STATION": ("Police", "👮"),
    "HOSPITAL_POLYCLINIC": ("Hospital", "🏥"),
    "MUSEUM": ("Museum", "🏛️"),
    "CAFE_PUB": ("Cafe", "☕"),
    "PARK_RECREATION_AREA": ("Park", "🌳"),
    "RAILWAY_STATION": ("Railway station", "🚉"),
    "PUBLIC_TRANSPORT_STOP": ("Transit stop", "🚏"),
}

GENERIC_NAME = "Unnamed place"


def describe_osm(category: PlaceCategory, tags: dict[str, str]) -> tuple[str, str]:
    """(kind, icon) for an OSM element found by a ``category`` query."""
    if category == PlaceCategory.ATTRACTION:
        if tags.get("tourism"):
            icon = "🏛️" if tags["tourism"] == "museum" else DEFAULT_ICONS[category]
            return capitalize_first(tags["tourism"]), icon
        if tags.get("historic"):
            return capitalize_first(tags["historic"]), "🏛️"

    elif category == PlaceCategory.FOOD:
        amenity = tags.get("amenity", "")
        icon = FOOD_ICONS.get(amenity, DEFAULT_ICONS[category])
        if tags.get("cuisine"):
            return capitalize_first(tags["cuisine"].split(";")[0].strip()), icon
        if amenity:
            return capitalize_first(amenity), icon

    elif category == PlaceCategory.FREE:
        if tags.get("leisure"):
            return capitalize_first(tags["leisure"]), DEFAULT_ICONS[category]

    elif category == PlaceCategory.SERVICE:
        service = SERVICE_TYPES.get(tags.get("amenity", ""))
        if service:
            return service

    elif category == PlaceCategory.TRANSIT:
        station = tags.get("station")
        return (capitalize_first(station) if station else "Station"), DEFAULT_ICONS[category]

    return DEFAULT_KINDS[category], DEFAULT_ICONS[category]


def describe_tomtom(category: PlaceCategory, raw: RawPlace) -> tuple[str, str]:
    for code in raw.classification_codes:
        if code in TOMTOM_CODE_KINDS:
            return TOMTOM_CODE_KINDS[code]
    if raw.categories:
        return capitalize_first(raw.categories[0]), DEFAULT_ICONS[category]
    return DEFAULT_KINDS[category], DEFAULT_ICONS[category]


def display_name(raw: RawPlace, kind: Optional[str] = None) -> str:
    """``name``, then ``name:en``, then any other ``name:*`` tag, then a generic label."""
    if raw.name:
        return raw.name
    tags = raw.tags
    if tags.get("name"):
        return tags["name"]
    if tags.get("name:en"):
        return tags["name:en"]
    for key in sorted(tags):
        if key.startswith("name:") and tags[key]:
            return tags[key]
    return kind or GENERIC_NAME


def normalize_place(
    raw: RawPlace,
    category: PlaceCategory,
    origin: Coordinate,
    use_provider_distance: bool = False,
) -> Place:
    if raw.provider == "tomtom":
        kind, icon = describe_tomtom(category, raw)
    else:
        kind, icon = describe_osm(category, raw.tags)

    if use_provider_distance and raw.distance_meters is not None:
        distance = raw.distance_meters
    else:
        distance = haversine_distance(origin.latitude, origin.longitude, raw.latitude, raw.longitude)
    return Place(
        id=f"{'osm' if raw.provider == 'overpass' else raw.provider}:{raw.provider_id}",
        name=display_name(raw, kind),
        category=category,
        coordinate=Coordinate(latitude=raw.latitude, longitude=raw.longitude),
        distance_meters=distance,
        distance_label=format_distance(distance),
        icon=icon,
        kind=kind,
        provider=raw.provider,
    )
