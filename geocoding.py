# geocoding.py

import logging

from opencage.geocoder import OpenCageGeocode

logger = logging.getLogger(__name__)


def build_geocoder(api_key):
    # Reverse geocoding is optional; without a key captures store no address
    if not api_key:
        return None
    return OpenCageGeocode(api_key)


def get_address_from_coords(geocoder, lat, lon):
    if geocoder is None:
        return None
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        return "Invalid Coordinates"
    try:
        results = geocoder.reverse_geocode(lat, lon, limit=1, no_annotations=1)
        if results and results[0].get('formatted'):
            return results[0]['formatted']
        return "Address Not Found"
    except Exception as e:
        logger.warning("Reverse geocoding failed for %s,%s: %s", lat, lon, e)
        return "Geocoding API Error"
