"""Репозитории для работы с базой данных"""

from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.client_repository import ClientRepository
from database.repositories.hold_repository import HoldRepository
from database.repositories.master_repository import MasterRepository
from database.repositories.service_repository import ServiceRepository

__all__ = [
    "AppointmentRepository",
    "ClientRepository",
    "HoldRepository",
    "MasterRepository",
    "ServiceRepository",
]
