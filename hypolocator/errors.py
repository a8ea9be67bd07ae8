class LocationError(Exception):
    """Base class for hypocenter location failures."""


class InsufficientDataError(LocationError):
    """Fewer usable observations than free parameters after weighting."""


class GeometryError(LocationError):
    """No valid ray path for a station and trial depth."""


class SingularSystemError(LocationError):
    """Normal equations cannot be solved for any unknown."""


class DivergenceWarning(UserWarning):
    """Solution returned without converging; it is marked degraded."""
