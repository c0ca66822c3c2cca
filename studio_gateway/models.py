"""
Data Models Module

Pydantic models for the few request bodies the gateway inspects and for the
responses it builds itself. Bodies that are relayed to the tenant backend
unchanged (redeem, booking, contact) are accepted as plain dicts.

Models are organized by functional area:
- Auth link generation (password reset, signup confirmation)
- Organization settings (bank details)
- Studio catalog (instructors)
- Health check
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Auth Link Models
# ============================================================================

class LinkRequest(BaseModel):
    """Request body for generating a confirmation or password reset link."""
    email: Optional[str] = Field(None, description="Address to generate the link for")


class PasswordResetLinkResponse(BaseModel):
    resetToken: str = Field(..., description="Token hash to verify on the reset page")
    resetLink: str = Field(..., description="Link containing the token hash")


class ConfirmationLinkResponse(BaseModel):
    confirmationToken: str = Field(..., description="Token hash to verify on the activation page")
    confirmationLink: str = Field(..., description="Link containing the token hash")


# ============================================================================
# Organization Models
# ============================================================================

class BankDetails(BaseModel):
    """Bank transfer details shown on payment instructions."""

    model_config = ConfigDict(extra="allow")

    accountName: Optional[str] = None
    bankName: Optional[str] = None
    accountNumber: Optional[str] = None
    iban: Optional[str] = None
    swift: Optional[str] = None
    branchCode: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.accountName and self.bankName and self.accountNumber)


class BankDetailsUpdate(BaseModel):
    bankDetails: Optional[BankDetails] = None


class BankDetailsResponse(BaseModel):
    bankDetails: Optional[Dict[str, Any]] = None


# ============================================================================
# Catalog Models
# ============================================================================

DEFAULT_INSTRUCTOR_IMAGE = (
    "https://images.unsplash.com/photo-1594381898411-846e7d193883"
    "?q=80&w=2787&auto=format&fit=crop"
)


class Instructor(BaseModel):
    """Instructor card as rendered by the team page."""
    id: Optional[Any] = None
    name: str = "Unknown Instructor"
    role: str = "Instructor"
    description: str = ""
    image: str = DEFAULT_INSTRUCTOR_IMAGE

    @classmethod
    def from_backend(cls, raw: Dict[str, Any]) -> "Instructor":
        """
        Map a tenant backend instructor record to the card fields.

        The photo path is rewritten from ``/instructorPhotos/`` to
        ``/InstructorPhotos/`` to match the storage bucket.
        """
        user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
        image = raw.get("photoUrl") or raw.get("image") or DEFAULT_INSTRUCTOR_IMAGE
        return cls(
            id=raw.get("id"),
            name=user.get("name") or raw.get("name") or "Unknown Instructor",
            role=raw.get("role") or "Instructor",
            description=raw.get("bio") or raw.get("description") or "",
            image=image.replace("/instructorPhotos/", "/InstructorPhotos/"),
        )


# ============================================================================
# Health Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
