"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Security, status
from pydantic import BaseModel, EmailStr, Field

from auth import AuthManager, get_current_user
from policy import Caller, Role
from ..dependencies import get_auth_manager

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

class RegisterRequest(BaseModel):
    """Request model for registration."""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = Role.CUSTOMER

class LoginRequest(BaseModel):
    """Request model for login."""
    email: EmailStr
    password: str

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    manager: AuthManager = Depends(get_auth_manager)
):
    """Register a customer or freelancer and return a bearer token."""
    return await manager.register(
        request.username,
        request.email,
        request.password,
        request.role
    )

@router.post("/login")
async def login(
    request: LoginRequest,
    manager: AuthManager = Depends(get_auth_manager)
):
    """Verify email and password and return a bearer token."""
    return await manager.login(request.email, request.password)

@router.get("/verify")
async def verify_token(caller: Caller = Security(get_current_user)):
    """Verify the current bearer token."""
    return {
        "valid": True,
        "user_id": caller.user_id,
        "role": caller.role.value
    }

# Export the router
__all__ = ['router']
