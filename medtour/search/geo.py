#!/usr/bin/env python3
"""Great-circle distance between two points"""

import math

# Earth radius in meters
EARTH_RADIUS_M = 6372795.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters (atan2 form, equivalent to haversine).

    NaN coordinates propagate as NaN; callers must filter out missing
    coordinates before calling.
    """
    # argument order is normalized so the result is exactly symmetric
    if (lat2, lon2) < (lat1, lon1):
        lat1, lon1, lat2, lon2 = lat2, lon2, lat1, lon1

    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    delta = math.radians(lon2) - math.radians(lon1)

    cl1, cl2 = math.cos(rlat1), math.cos(rlat2)
    sl1, sl2 = math.sin(rlat1), math.sin(rlat2)
    cdelta, sdelta = math.cos(delta), math.sin(delta)

    y = math.sqrt((cl2 * sdelta) ** 2 + (cl1 * sl2 - sl1 * cl2 * cdelta) ** 2)
    x = sl1 * sl2 + cl1 * cl2 * cdelta
    return math.atan2(y, x) * EARTH_RADIUS_M

