"""Pydantic schemas for guardians: trusted contacts with permissioned document access."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

GuardianRelationship = Literal[
    "spouse",
    "child",
    "parent",
    "sibling",
    "friend",
    "lawyer",
    "financial_advisor",
    "executor",
    "trustee",
    "other",
]
AccessLevel = Literal["emergency_only", "limited", "standard", "full"]
InvitationStatus = Literal["pending", "accepted", "declined", "revoked"]
ActivationMethod = Literal["email", "sms", "both"]


class GuardianPermissions(BaseModel):
    view_documents: bool = False
    download_documents: bool = False
    receive_updates: bool = True
    trigger_emergency_protocol: bool = False
    access_emergency_contacts: bool = False
    view_family_tree: bool = False
    receive_milestone_notifications: bool = False


class InviteGuardianRequest(BaseModel):
    guardian_name: str = Field(..., min_length=1)
    guardian_email: EmailStr
    guardian_phone: str | None = None
    relationship: GuardianRelationship
    access_level: AccessLevel = "emergency_only"
    emergency_priority: int = Field(default=1, ge=1, le=10)  # 1 = contacted first
    can_trigger_emergency: bool = False
    emergency_activation_method: ActivationMethod = "email"
    notes: str | None = None


class GuardianUpdate(BaseModel):
    guardian_name: str | None = Field(default=None, min_length=1)
    guardian_phone: str | None = None
    relationship: GuardianRelationship | None = None
    access_level: AccessLevel | None = None
    permissions: GuardianPermissions | None = None
    emergency_priority: int | None = Field(default=None, ge=1, le=10)
    can_trigger_emergency: bool | None = None
    emergency_activation_method: ActivationMethod | None = None
    notes: str | None = None


class Guardian(BaseModel):
    id: str
    user_id: str
    guardian_name: str
    guardian_email: str
    guardian_phone: str | None = None
    relationship: GuardianRelationship

    invitation_status: InvitationStatus = "pending"
    invitation_token: str | None = None
    token_expires_at: datetime | None = None
    accepted_at: datetime | None = None

    access_level: AccessLevel
    permissions: GuardianPermissions = Field(default_factory=GuardianPermissions)
    emergency_priority: int = 1
    can_trigger_emergency: bool = False
    emergency_activation_method: ActivationMethod = "email"
    accessible_documents: list[str] = Field(default_factory=list)

    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DocumentAccessRequest(BaseModel):
    document_ids: list[str] = Field(..., min_length=1)


class InvitationTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class FamilyOwner(BaseModel):
    name: str | None = None
    email: str | None = None


class InvitationDetails(BaseModel):
    guardian: Guardian
    family_owner: FamilyOwner
