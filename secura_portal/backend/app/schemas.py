# backend/app/schemas.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# -------------------- Auth --------------------

class StaffLoginIn(BaseModel):
    email: str
    password: str


class StaffOut(BaseModel):
    id: int
    email: str
    full_name: str
    phone: Optional[str] = None
    role: str
    agency_id: Optional[int] = None
    agency_name: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StaffLoginOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: StaffOut


class ActorOut(BaseModel):
    role: str
    id: int
    agency_id: Optional[int] = None
    name: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class OtpRequestIn(BaseModel):
    phone: str
    ref: Optional[str] = None


class OtpRequestOut(BaseModel):
    sent: bool
    expires_in_seconds: int


class OtpVerifyIn(BaseModel):
    phone: str
    otp: str


class ClientOut(BaseModel):
    id: int
    phone: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    onboarding_completed: bool = False
    is_verified: bool = False
    agent_id: Optional[int] = None
    agency_id: Optional[int] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class OtpVerifyOut(BaseModel):
    session_token: str
    client: ClientOut


class ClientProfileIn(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    onboarding_completed: Optional[bool] = None


# -------------------- Referrals --------------------

class ReferralLinkOut(BaseModel):
    token: str
    slug: str
    agent_id: int
    agency_id: int
    is_active: bool
    url: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ReferralInfoOut(BaseModel):
    token: str
    agency_id: int
    agency_name: str
    agent_id: int
    agent_name: str


# -------------------- Provisioning --------------------

class CreateUserIn(BaseModel):
    """Either a new staff account or, with isPasswordReset, a password reset."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")
    phone: Optional[str] = None
    agency_id: Optional[int] = Field(default=None, alias="agencyId")
    created_by: Optional[int] = Field(default=None, alias="createdBy")
    is_password_reset: bool = Field(default=False, alias="isPasswordReset")
    user_id: Optional[int] = Field(default=None, alias="userId")

    @model_validator(mode="after")
    def _check_mode(self):
        if self.is_password_reset:
            if self.user_id is None:
                raise ValueError("userId is required for a password reset")
        elif not self.email or not self.role or not self.full_name:
            raise ValueError("email, role and fullName are required")
        return self


class CreateUserOut(BaseModel):
    success: bool
    user: StaffOut
    email_sent: bool
    message: str


class AgencyCreate(BaseModel):
    name: str
    email: str
    description: Optional[str] = None
    admin_full_name: str
    admin_email: str
    admin_password: Optional[str] = None


class AgencyUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    is_active: Optional[bool] = None


class AgencyOut(BaseModel):
    id: int
    name: str
    email: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    is_active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AgencyCreateOut(BaseModel):
    agency: AgencyOut
    admin: StaffOut
    email_sent: bool


# -------------------- Properties / documents --------------------

class DocumentOut(BaseModel):
    id: int
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    uploaded_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PropertyOut(BaseModel):
    id: int
    client_id: int
    title: str
    location: str
    property_type: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    area_sqft: Optional[float] = None
    details: Optional[dict[str, Any]] = None
    status: str
    created_at: datetime
    documents: List[DocumentOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, p: Any) -> "PropertyOut":
        out = cls.model_validate(p)
        out.details = json.loads(p.details_json) if p.details_json else None
        return out


class PropertyCreateOut(BaseModel):
    property: PropertyOut
    failed_uploads: int


class DocumentUploadOut(BaseModel):
    documents: List[DocumentOut]
    failed_uploads: int


# -------------------- Submissions --------------------

class SubmissionCreate(BaseModel):
    property_ids: List[int]
    agency_id: Optional[int] = None
    agent_id: Optional[int] = None


class IdentitySubmissionCreate(BaseModel):
    agency_id: Optional[int] = None
    agent_id: Optional[int] = None


class StatusChangeIn(BaseModel):
    status: str


class SubmissionOut(BaseModel):
    id: int
    submission_type: str
    property_id: Optional[int] = None
    client_id: Optional[int] = None
    agent_id: Optional[int] = None
    agency_id: int
    status: str
    notes: Optional[str] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class PropertySnapshotOut(BaseModel):
    id: Optional[int] = None
    title: str
    location: str
    property_type: str
    status: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ClientSnapshotOut(BaseModel):
    id: Optional[int] = None
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class SubmissionViewOut(BaseModel):
    submission: SubmissionOut
    property: Optional[PropertySnapshotOut] = None
    client: Optional[ClientSnapshotOut] = None
    unread_count: int = 0
    agency_name: Optional[str] = None
    agent_name: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class SubmissionDetailOut(SubmissionViewOut):
    property_documents: List[DocumentOut] = Field(default_factory=list)
    identity_documents: List[DocumentOut] = Field(default_factory=list)


# -------------------- Updates / messaging --------------------

class AttachmentOut(BaseModel):
    id: int
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    uploaded_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UpdateOut(BaseModel):
    id: int
    submission_id: int
    sender_role: str
    sender_id: Optional[int] = None
    client_id: Optional[int] = None
    sender_name: Optional[str] = None
    message: Optional[str] = None
    is_read: bool
    created_at: datetime
    attachments: List[AttachmentOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class ThreadOut(BaseModel):
    updates: List[UpdateOut]
    unread_count: int


class PostUpdateOut(BaseModel):
    update: UpdateOut
    failed_uploads: int
    orphaned_uploads: int


class SignedUrlOut(BaseModel):
    url: str
    file_name: str
    mime_type: Optional[str] = None
    expires_in: int


class DownloadFileIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(alias="filePath")
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    user_type: str = Field(default="client", alias="userType")


# -------------------- Audit --------------------

class SubmissionAuditOut(BaseModel):
    id: int
    submission_id: int
    actor_type: str
    actor_id: Optional[int] = None
    action: str
    file_name: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SubmissionAuditPage(BaseModel):
    items: List[SubmissionAuditOut]
    total: int


class AuditLogOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    client_id: Optional[int] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


# -------------------- Notifications --------------------

class NotificationOut(BaseModel):
    id: int
    agency_id: int
    agent_id: Optional[int] = None
    client_id: Optional[int] = None
    property_id: Optional[int] = None
    submission_id: Optional[int] = None
    type: str
    title: str
    message: str
    metadata: Optional[dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


# -------------------- SMS --------------------

class SendSmsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str
    otp: str
    client_id: Optional[int] = Field(default=None, alias="clientId")
