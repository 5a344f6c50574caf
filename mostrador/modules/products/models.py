"""
Modelo de lectura del catálogo.

El CRUD de productos vive en el colaborador de catálogo; este núcleo solo
lee nombre, precio y unidad para los reportes de caja.
"""
from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, Uuid
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    is_weighable = Column(Boolean, nullable=False, default=False)  # Se vende por peso (kg)
    unit_label = Column(String(20), nullable=False, default="un")
    is_active = Column(Boolean, nullable=False, default=True)
