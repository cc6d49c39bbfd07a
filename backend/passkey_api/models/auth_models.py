from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime


class BeginCeremonyRequest(BaseModel):
    """Request model for registerStart and loginStart"""
    username: str = Field(..., min_length=1, description="Account name")

    @validator('username')
    def validate_username(cls, v):
        if not v.strip():
            raise ValueError('Username cannot be empty or whitespace only')
        return v.strip()


class MessageResponse(BaseModel):
    """Response model for finish calls"""
    success: bool = True
    message: str


class UserResponse(BaseModel):
    """Response model for user information"""
    id: str = Field(..., description="Base64url user handle")
    name: str
    display_name: str
    credential_count: int = 0
    created_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    """Response model for user list"""
    name: str
    display_name: str
    credential_count: int
    created_at: Optional[datetime] = None


class SessionInfo(BaseModel):
    """Response model for session information"""
    user: Optional[UserResponse]
    is_authenticated: bool
    expires_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = "healthy"
    service: str = "passkey-api"
    version: str = "0.1.0"
    timestamp: str
    database: str = "connected"
