"""
Services package for Reports module

Exports the report service and the pure aggregation helpers.
"""

from .aggregation import ProductSaleLine, ProductSalesSummary, aggregate_product_sales, discount_ratio
from .cash_registers import CashRegisterReport, CashRegisterReportService, RegisterSummary

__all__ = [
    "ProductSaleLine",
    "ProductSalesSummary",
    "aggregate_product_sales",
    "discount_ratio",
    "CashRegisterReport",
    "CashRegisterReportService",
    "RegisterSummary",
]
