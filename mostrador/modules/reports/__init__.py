"""
Reports Module

Reportes de caja: arqueo de cada turno, productos vendidos en la ventana
de la caja e historial de cierres.

Este módulo NO crea tablas; consulta cajas, pedidos y productos.

Architecture Pattern: Service Layer
- routers/ -> endpoints FastAPI
- services/ -> consultas y agregación
- schemas/ -> modelos Pydantic de respuesta
- utils/ -> formato de cantidades y reporte de texto para impresión
- tasks.py -> impresión del reporte de cierre (Celery)
"""
