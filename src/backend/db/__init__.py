"""
Database models and enums.

Import table classes from here so that every table is registered on
SQLModel.metadata before `init_db()` runs.
"""
from .models import (
    # Accounts and access control
    User,
    Role,
    Permission,
    UserRole,
    RolePermission,
    UserSession,
    Verification,
    Connection,
    AuditLog,
    Counter,

    # Settings lookups
    Country,
    Organ,
    Department,
    Location,
    Floor,
    FamilyRelationship,
    IncidentType,
    Officer,

    # Employees
    Employee,
    Dependant,
    Spouse,
    Vehicle,

    # Requests and reports
    Attachment,
    Incident,
    IncidentAssignment,
    IncidentAssessment,
    CarPassRequest,
    IdRequest,
    AccessRequest,
    Visitor,
    VisitorLog,

    # Helpers
    generate_id,
    utc_now,
)
from .enums import (
    AssessmentLevel,
    AssessmentStatus,
    AuditAction,
    CarPassRequestStatus,
    CarPassRequestType,
    IdRequestType,
    ImpactType,
    IncidentSeverity,
    ProfileStatus,
    RequestReason,
    SerialNumberType,
    StorageContainer,
    VerificationType,
)

__all__ = [
    "User",
    "Role",
    "Permission",
    "UserRole",
    "RolePermission",
    "UserSession",
    "Verification",
    "Connection",
    "AuditLog",
    "Counter",
    "Country",
    "Organ",
    "Department",
    "Location",
    "Floor",
    "FamilyRelationship",
    "IncidentType",
    "Officer",
    "Employee",
    "Dependant",
    "Spouse",
    "Vehicle",
    "Attachment",
    "Incident",
    "IncidentAssignment",
    "IncidentAssessment",
    "CarPassRequest",
    "IdRequest",
    "AccessRequest",
    "Visitor",
    "VisitorLog",
    "generate_id",
    "utc_now",
    "AssessmentLevel",
    "AssessmentStatus",
    "AuditAction",
    "CarPassRequestStatus",
    "CarPassRequestType",
    "IdRequestType",
    "ImpactType",
    "IncidentSeverity",
    "ProfileStatus",
    "RequestReason",
    "SerialNumberType",
    "StorageContainer",
    "VerificationType",
]
