# auth.py - Authentication and Authorization
from datetime import datetime, timezone
from typing import Dict, Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from supabase import Client
from config import settings
from database import get_supabase
from errors import AuthenticationRequired, BackendFailure, ValidationFailed, service_operation
from models import Actor, ProfileData, Session, UserType
import logging

logger = logging.getLogger(__name__)

# OAuth2 scheme (Supabase access tokens)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/signin")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/signin", auto_error=False)

def _user_type(value) -> UserType:
    try:
        return UserType(value)
    except ValueError:
        return UserType.USER

# =====================================================
# SUPABASE AUTH FLOWS
# =====================================================

@service_operation("signing up")
def sign_up(
    client: Client,
    email: str,
    password: str,
    user_type=UserType.USER,
    profile: Optional[ProfileData] = None
) -> Dict:
    """
    Create an auth user and the matching profiles row.

    The profile is keyed by the id Supabase Auth returns.
    """
    if not password or len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long")

    profile = profile or ProfileData()
    user_type = _user_type(getattr(user_type, "value", user_type))
    full_name = profile.full_name or " ".join(
        part for part in (profile.first_name, profile.last_name) if part
    ) or None

    metadata = {
        "user_type": user_type.value,
        "full_name": full_name,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
    }
    response = client.auth.sign_up({
        "email": email,
        "password": password,
        "options": {"data": metadata},
    })
    if not response.user:
        raise BackendFailure("No user returned from sign up")

    row = profile.model_dump(exclude_none=True)
    row.update({
        "id": response.user.id,
        "email": email,
        "full_name": full_name,
        "user_type": user_type.value,
        "points": 0,
        "is_verified": False,
    })
    created = client.table("profiles").insert(row).execute()
    if not created.data:
        raise BackendFailure("Failed to create profile")

    logger.info(f"User {response.user.id} signed up as {user_type.value}")
    return created.data[0]

@service_operation("signing in")
def sign_in(client: Client, email: str, password: str) -> Session:
    """Password sign-in; the role comes from the profile, then auth metadata"""
    try:
        response = client.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        raise AuthenticationRequired(str(e) or "Invalid login credentials", cause=e)

    if not response.user or not response.session:
        raise AuthenticationRequired("No user returned from authentication")

    user = response.user
    profile = client.table("profiles").select("id, user_type").eq("id", user.id).execute()
    if profile.data:
        user_type = profile.data[0].get("user_type")
        client.table("profiles").update({
            "last_login_at": datetime.now(timezone.utc).isoformat()
        }).eq("id", user.id).execute()
    else:
        user_type = (user.user_metadata or {}).get("user_type")

    return Session(
        access_token=response.session.access_token,
        refresh_token=response.session.refresh_token,
        user_id=user.id,
        user_type=_user_type(user_type).value,
    )

@service_operation("signing out")
def sign_out(client: Client, token: str) -> None:
    """Revoke the sessions behind an access token"""
    client.auth.admin.sign_out(token)

@service_operation("requesting password reset")
def reset_password(client: Client, email: str) -> None:
    client.auth.reset_password_for_email(email, {"redirect_to": settings.PASSWORD_RESET_REDIRECT})
    logger.info(f"Password reset requested for {email}")

@service_operation("fetching session user")
def get_session_user(client: Client, token: str):
    """Resolve an access token to its Supabase Auth user"""
    response = client.auth.get_user(token)
    if not response or not response.user:
        raise AuthenticationRequired()
    return response.user

# =====================================================
# TOKEN VERIFICATION
# =====================================================

def verify_token(token: str) -> Dict:
    """Verify and decode a Supabase access token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        raise credentials_exception

    if payload.get("sub") is None:
        raise credentials_exception
    return payload

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    client: Client = Depends(get_supabase)
) -> Actor:
    """Get current authenticated user from token"""
    payload = verify_token(token)

    response = client.table("profiles").select("id, email, user_type").eq("id", payload["sub"]).execute()
    if not response.data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    profile = response.data[0]
    return Actor(
        id=profile["id"],
        email=profile.get("email") or payload.get("email"),
        user_type=_user_type(profile.get("user_type")),
    )

# Optional authentication (for public + authenticated endpoints)
async def get_current_user_optional(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    client: Client = Depends(get_supabase)
) -> Optional[Actor]:
    """Get current user if authenticated, None otherwise"""
    if not token:
        return None

    try:
        return await get_current_user(token, client)
    except HTTPException:
        return None

# Role-based authorization
def require_user_type(*allowed: UserType):
    """Dependency factory restricting an endpoint to some user types"""
    async def checker(current_user: Actor = Depends(get_current_user)) -> Actor:
        if current_user.user_type not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return current_user
    return checker

get_admin_user = require_user_type(UserType.ADMIN)
get_tender_user = require_user_type(UserType.TENDER, UserType.ADMIN)
