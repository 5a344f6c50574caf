from typing import Annotated
from fastapi import Depends
from mostrador.modules.auth.dependencies import get_auth_context, require_cashier, require_manager
from mostrador.modules.auth.schemas import AuthContext

user_dependency = Annotated[AuthContext, Depends(get_auth_context)]
cashier_dependency = Annotated[AuthContext, Depends(require_cashier())]
manager_dependency = Annotated[AuthContext, Depends(require_manager())]
