from models.hub import Hub
from models.vehicle import Vehicle, ServiceRecord
from models.rider import Rider, KycDocument, AssignmentHistory
from models.rider_earning import RiderEarning
from models.damage_record import DamageRecord
from models.status_event import StatusEvent

__all__ = [
    "Hub", "Vehicle", "ServiceRecord",
    "Rider", "KycDocument", "AssignmentHistory",
    "RiderEarning", "DamageRecord", "StatusEvent",
]
