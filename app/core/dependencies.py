"""
Core dependencies for route protection
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import SupabaseClient
from app.modules.auth.service import AuthService
from typing import Dict, Any

security = HTTPBearer()


def get_auth_service() -> AuthService:
    return AuthService(SupabaseClient.get_service_client())


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Extract current user info from JWT token"""
    return auth_service.get_current_user(credentials.credentials)


def is_admin(user_data: Dict[str, Any]) -> bool:
    """Admins are flagged in app_metadata, which is set server-side and cannot be modified by users"""
    app_metadata = user_data.get("app_metadata") or {}
    return app_metadata.get("type") == "super_user" or app_metadata.get("role") == "admin"


def require_admin(user_data: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not is_admin(user_data):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return user_data
