"""
Errores tipados del núcleo de caja y cobros.

Cada error lleva un mensaje legible para el operador (en español), el
código HTTP con el que se expone y un contexto con los datos necesarios
para actuar (faltante, seña mínima, etc.).
"""
from typing import Any, Dict, Optional

from fastapi import status


class POSError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, reason: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "detail": self.message,
            "error": type(self).__name__,
        }
        if self.reason:
            body["reason"] = self.reason
        body.update({k: str(v) if v is not None else None for k, v in self.context.items()})
        return body


class ValidationError(POSError):
    """Dato ingresado que no cumple una regla (monto negativo, seña fuera de rango)."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidStateError(POSError):
    """Acción sobre una máquina de estados en el estado incorrecto."""
    status_code = status.HTTP_409_CONFLICT


class BusinessRuleError(POSError):
    """Regla de negocio transversal (descuento sin efectivo, cupón vencido)."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND


class TransientIOError(POSError):
    """Falla de red/almacenamiento: la operación completa debe reintentarse."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
