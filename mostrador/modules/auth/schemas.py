from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from enum import Enum


class UserRole(str, Enum):
    """Roles provistos por el proveedor de identidad (no se modelan aquí)"""
    SELLER = "seller"
    CASHIER = "cashier"
    MANAGER = "manager"


# Auth context schemas
class AuthContext(BaseModel):
    user_id: UUID
    user_role: Optional[str] = None
    email: Optional[str] = None
