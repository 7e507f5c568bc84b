from decimal import Decimal
from fastapi import APIRouter, Depends

from ..deps import get_converter
from ..errors import ValidationError
from ..services.currency import CurrencyConverter, serialize_rate

router = APIRouter()


@router.get("")
def exchange_rate(converter: CurrencyConverter = Depends(get_converter)):
    return serialize_rate(converter.get_usd_to_ngn_rate())


@router.get("/convert")
def convert(amount: Decimal, converter: CurrencyConverter = Depends(get_converter)):
    if amount < 0:
        raise ValidationError("amount must not be negative")
    ngn, rate = converter.convert_usd_to_ngn(amount)
    return {"usd": str(amount), "ngn": str(ngn), **serialize_rate(rate)}
