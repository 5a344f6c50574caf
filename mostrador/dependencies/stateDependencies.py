from typing import Annotated
from fastapi import Depends, Request
from mostrador.common.realtime import ChangeFeed
from mostrador.modules.cash_registers.close_requests import CloseRequestStore


def get_change_feed(request: Request) -> ChangeFeed:
    """Change feed compartido por la aplicación (ver main.py)"""
    return request.app.state.change_feed


def get_close_requests(request: Request) -> CloseRequestStore:
    """Solicitudes de cierre pendientes por caja"""
    return request.app.state.close_requests


change_feed_dependency = Annotated[ChangeFeed, Depends(get_change_feed)]
close_requests_dependency = Annotated[CloseRequestStore, Depends(get_close_requests)]
