"""
Change feed en proceso para notificar cambios de pedidos, cajas y pagos.

Los consumidores deciden si refrescan por push (suscripción) o por
polling. Cancelar una suscripción es llamar al handle devuelto por
`subscribe`.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import UUID

from mostrador.common.money import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    entity_kind: str
    entity_id: Optional[UUID]
    action: str
    occurred_at: datetime = field(default_factory=utcnow)


OnChange = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], None]


class ChangeFeed:
    """Registro de suscriptores por tipo de entidad (`orders`, `cash_registers`, `payments`)."""

    def __init__(self):
        self._subscribers: Dict[str, List[OnChange]] = {}
        self._lock = threading.Lock()

    def subscribe(self, entity_kind: str, on_change: OnChange) -> Unsubscribe:
        with self._lock:
            self._subscribers.setdefault(entity_kind, []).append(on_change)

        released = False

        def unsubscribe() -> None:
            nonlocal released
            if released:
                return
            released = True
            with self._lock:
                callbacks = self._subscribers.get(entity_kind, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)

        return unsubscribe

    def subscriber_count(self, entity_kind: str) -> int:
        with self._lock:
            return len(self._subscribers.get(entity_kind, []))

    def publish(self, entity_kind: str, entity_id: Optional[UUID], action: str) -> ChangeEvent:
        event = ChangeEvent(entity_kind=entity_kind, entity_id=entity_id, action=action)
        with self._lock:
            callbacks = list(self._subscribers.get(entity_kind, []))

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Subscriber for {entity_kind} failed on {action}: {e}")

        return event
