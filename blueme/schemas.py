"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming JSON bodies
- Response models for API responses

All JSON keys are camelCase (profilePicture, receiverId, ...); Python
attributes are snake_case and mapped through an alias generator.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Pydantic Request Models
# =============================================================================

class RegisterRequest(CamelModel):
    """Body of POST /auth/register. Presence and format are checked by the service."""
    phone: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"phone": "5551234567", "password": "secret1", "name": "Alice"}
            ]
        }
    )


class LoginRequest(CamelModel):
    phone: Optional[str] = None
    password: Optional[str] = None


class AddContactRequest(CamelModel):
    """
    Body of POST /contacts: either contactId, or phone and name.
    """
    contact_id: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class SendMessageRequest(CamelModel):
    receiver_id: Optional[str] = None
    content: Optional[str] = None


class ProfileUpdateRequest(CamelModel):
    """Fields left out are not changed. An empty profilePicture clears it."""
    name: Optional[str] = None
    status: Optional[str] = None
    profile_picture: Optional[str] = None


# =============================================================================
# Pydantic Response Models
# =============================================================================

class UserResponse(CamelModel):
    """A user record without its password hash."""
    id: str
    phone: str
    name: str
    status: str = ""
    profile_picture: str = ""
    created_at: str
    updated_at: Optional[str] = None
    last_seen: Optional[str] = None


class IdentityResponse(CamelModel):
    id: str
    phone: str
    name: str


class LoginResponse(CamelModel):
    user: IdentityResponse


class ContactResponse(CamelModel):
    """A contact joined with the referenced user's profile and presence."""
    id: str
    name: str
    phone: str
    status: str = ""
    profile_picture: str = ""
    added_at: str
    is_online: bool
    last_seen: Optional[str] = None
    unread_count: int = Field(0, ge=0)


class AddContactResponse(CamelModel):
    success: bool = True
    created: bool = Field(False, description="True if a placeholder account was created for the phone")
    contact: UserResponse


class UserSearchResult(CamelModel):
    id: str
    name: str
    phone: str


class MessageResponse(CamelModel):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    timestamp: str
    read: bool


class PresenceResponse(CamelModel):
    is_online: bool
    last_seen: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


class UploadResponse(BaseModel):
    url: str


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
