"""
Solicitudes de cierre pendientes (estado CLOSING).

Pedir el cierre es una prueba en seco: el monto declarado se guarda aquí
hasta que el cajero confirma o cancela, sin tocar la fila de la caja.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from mostrador.common.money import utcnow


@dataclass(frozen=True)
class CloseRequest:
    register_id: UUID
    declared_amount: Decimal
    cashier_id: Optional[UUID] = None
    requested_at: datetime = field(default_factory=utcnow)


class CloseRequestStore:
    """Almacén en memoria, compartido por los workers de un mismo proceso"""

    def __init__(self):
        self._requests: Dict[UUID, CloseRequest] = {}
        self._lock = threading.Lock()

    def get(self, register_id: UUID) -> Optional[CloseRequest]:
        with self._lock:
            return self._requests.get(register_id)

    def put(self, register_id: UUID, declared_amount: Decimal, cashier_id: Optional[UUID] = None) -> CloseRequest:
        request = CloseRequest(register_id=register_id, declared_amount=declared_amount, cashier_id=cashier_id)
        with self._lock:
            self._requests[register_id] = request
        return request

    def discard(self, register_id: UUID) -> Optional[CloseRequest]:
        with self._lock:
            return self._requests.pop(register_id, None)

    def discard_stale(self, cashier_id: UUID, open_register_id: Optional[UUID]) -> List[CloseRequest]:
        """
        Quitar las solicitudes del cajero que no corresponden a su caja
        abierta (p. ej. una caja cerrada desde otro proceso).
        """
        with self._lock:
            stale = [
                r for r in self._requests.values()
                if r.cashier_id == cashier_id and r.register_id != open_register_id
            ]
            for request in stale:
                del self._requests[request.register_id]
        return stale

    def __contains__(self, register_id: UUID) -> bool:
        with self._lock:
            return register_id in self._requests

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
