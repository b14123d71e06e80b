"""
Model enums for database models.

These enums cover fixed, small value sets that are never managed at runtime.
Lookup data that administrators edit (countries, organs, incident types,
officers, ...) stays in tables.
"""
from enum import Enum


class IncidentSeverity(str, Enum):
    """Severity of a reported incident."""
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class AssessmentLevel(str, Enum):
    """Rating scale for an incident assessment's severity and likelihood."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ImpactType(str, Enum):
    DIRECT = "Direct"
    INDIRECT = "Indirect"
    SYSTEMIC = "Systemic"


class AssessmentStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class RequestReason(str, Enum):
    """Why a car pass or ID badge is being requested."""
    NEW = "NEW"
    LOST = "LOST"
    DAMAGED = "DAMAGED"
    EXPIRED = "EXPIRED"


class CarPassRequestType(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    SERVICEPROVIDER = "SERVICEPROVIDER"


class CarPassRequestStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class IdRequestType(str, Enum):
    """Who the requested ID badge is for."""
    EMPLOYEE = "EMPLOYEE"
    SPOUSE = "SPOUSE"
    DEPENDANT = "DEPENDANT"
    PRIVATEDRIVER = "PRIVATEDRIVER"


class ProfileStatus(str, Enum):
    """Review state of an employee's self-service profile update."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VerificationType(str, Enum):
    ONBOARDING = "onboarding"
    RESET_PASSWORD = "reset-password"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    RESET_PASSWORD = "RESET_PASSWORD"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    VERIFY_EMAIL = "VERIFY_EMAIL"


class SerialNumberType(str, Enum):
    """
    Counter types for human-readable request numbers.

    The value is the counter key; `prefix` is what appears in the number.
    """
    INCIDENT = "INCIDENT"
    CARPASSREQUEST = "CARPASSREQUEST"
    IDREQUEST = "IDREQUEST"
    ACCESSREQUEST = "ACCESSREQUEST"

    @property
    def prefix(self) -> str:
        return _SERIAL_PREFIXES[self]


_SERIAL_PREFIXES = {
    SerialNumberType.INCIDENT: "INC",
    SerialNumberType.CARPASSREQUEST: "CPR",
    SerialNumberType.IDREQUEST: "IDR",
    SerialNumberType.ACCESSREQUEST: "ACR",
}


class StorageContainer(str, Enum):
    """Blob storage containers, one per attachment-owning entity."""
    INCIDENTS = "incidents"
    CAR_PASS_REQUESTS = "car-pass-requests"
    ID_REQUESTS = "id-requests"
