from fastapi import Depends
from sqlalchemy.orm import Session
from typing import Annotated
from mostrador.database.database import get_db

# Database dependency
db_dependency = Annotated[Session, Depends(get_db)]
