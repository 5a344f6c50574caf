"""
Dependencias de autenticación para FastAPI.

El token lo emite el proveedor de identidad hospedado; aquí solo se
decodifica para obtener el usuario y su rol. No hay gestión de usuarios.
"""
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from mostrador.modules.auth.schemas import AuthContext, UserRole
from mostrador.core.config import settings

# Security scheme
security = HTTPBearer()


def _extract_role(payload: dict) -> Optional[str]:
    role = payload.get("user_role")
    if role:
        return role
    for claim in ("app_metadata", "user_metadata"):
        metadata = payload.get(claim) or {}
        if isinstance(metadata, dict) and metadata.get("role"):
            return metadata["role"]
    return None


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        """
        Obtener contexto de autenticación desde el token JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        options = {"verify_aud": settings.JWT_AUDIENCE is not None}
        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE,
                options=options,
            )
            user_id: str = payload.get("sub")
            if user_id is None:
                raise credentials_exception
            user_uuid = UUID(user_id)
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        return AuthContext(
            user_id=user_uuid,
            user_role=_extract_role(payload),
            email=payload.get("email"),
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_cashier():
        return AuthDependencies.require_role([UserRole.CASHIER.value, UserRole.MANAGER.value])

    @staticmethod
    def require_manager():
        return AuthDependencies.require_role([UserRole.MANAGER.value])


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_cashier = AuthDependencies.require_cashier
require_manager = AuthDependencies.require_manager
