import numpy as np

DEG_TO_RAD = 0.0174532
RAD_TO_DEG = 57.29578
NO_AZIMUTH = 999.0


def km_per_minute(latitude_minutes):
    """Return (east, north) kilometres per minute of arc at a latitude given in minutes."""
    phi = DEG_TO_RAD * (np.asarray(latitude_minutes, dtype=float) / 60.0)
    sin2 = np.sin(phi) ** 2
    sin4 = sin2 * sin2
    ca = 1.8553654 + 0.0062792 * sin2 + 0.0000319 * sin4
    cb = 1.8428071 + 0.0187098 * sin2 + 0.0001583 * sin4
    return ca * np.cos(phi), cb


def epicentral_offsets(station_lat, station_lon, lat, lon):
    """Short-distance east/north offsets (km) and epicentral distance from a trial epicenter.

    All angles are signed minutes of arc (north and east positive). Works on scalars or arrays.
    """
    station_lat = np.asarray(station_lat, dtype=float)
    station_lon = np.asarray(station_lon, dtype=float)
    east_factor, north_factor = km_per_minute((station_lat + lat) / 2.0)
    dx = (station_lon - lon) * east_factor
    dy = (station_lat - lat) * north_factor
    delta = np.sqrt(dx * dx + dy * dy) + 1.0e-6
    return dx, dy, delta


def shift_epicenter(lat: float, lon: float, east_km: float, north_km: float) -> tuple[float, float]:
    """Move an epicenter (signed minutes) by a step given in kilometres."""
    east_factor, north_factor = km_per_minute(lat)
    return (
        float(lat + north_km / north_factor),
        float(lon + east_km / east_factor),
    )


def azimuth(dx, dy):
    """Azimuth in degrees (0-360) of an east/north offset, 999 for a zero offset."""
    dx = np.asarray(dx, dtype=float)
    dy = np.asarray(dy, dtype=float)
    az = np.arctan2(dx, dy) * RAD_TO_DEG
    az = np.where(az < 0.0, az + 360.0, az)
    return np.where((dx == 0.0) & (dy == 0.0), NO_AZIMUTH, az)


def azimuthal_gap(station_azimuths: list[float]) -> float:
    """Calculate largest azimuthal gap."""
    if len(station_azimuths) < 2:
        return 360.0
    sorted_az = sorted(station_azimuths)
    gaps = [sorted_az[i + 1] - sorted_az[i] for i in range(len(sorted_az) - 1)]
    gaps.append(360.0 + sorted_az[0] - sorted_az[-1])
    return max(gaps)


def largest_gap_center(station_azimuths: list[float]) -> tuple[float, float]:
    """Return (gap, azimuth at the middle of the gap) for the largest gap."""
    sorted_az = sorted(station_azimuths)
    gap = sorted_az[0] + 360.0 - sorted_az[-1]
    upper = 0
    for i in range(1, len(sorted_az)):
        step = sorted_az[i] - sorted_az[i - 1]
        if step > gap:
            gap = step
            upper = i
    return gap, sorted_az[upper] - 0.5 * gap
