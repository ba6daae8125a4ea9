"""Service layer wiring the recording core to the backend."""

from .ride_service import RideService, RideServiceConfig, SaveOutcome, SaveStatus  # noqa: F401
from .territory_service import TerritoryService  # noqa: F401
