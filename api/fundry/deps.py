from typing import Optional
from fastapi import Request

from .services.currency import CurrencyConverter
from .services.payments import PaymentGateways


def get_converter(request: Request) -> CurrencyConverter:
    return request.app.state.converter


def get_gateways(request: Request) -> PaymentGateways:
    return request.app.state.gateways


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
