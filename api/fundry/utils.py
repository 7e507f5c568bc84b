
import hashlib, json, secrets
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from .config import SECRET_KEY, SESSION_MAX_AGE_SECONDS

CENT = Decimal("0.01")


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def canonical_json(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def load_json(raw: Optional[str], default=None):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def to_money(value) -> Decimal:
    """Coerce a numeric value to a cent-precision Decimal (half-up)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_usd(amount) -> str:
    return f"${to_money(amount):,.2f}"


def format_percent(rate) -> str:
    value = Decimal(str(rate)).normalize()
    return f"{value:f}%"


def new_private_link() -> str:
    return secrets.token_urlsafe(12)


def new_agreement_id() -> str:
    return f"SAFE-{secrets.token_hex(4).upper()}"


def new_payment_reference(investment_id: int) -> str:
    return f"FND-{investment_id}-{secrets.token_hex(6)}"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(SECRET_KEY, salt="fundry-session")


def make_token(payload: dict) -> str:
    return _serializer().dumps(payload)


def read_token(token: str, max_age: int = SESSION_MAX_AGE_SECONDS) -> Optional[dict]:
    try:
        return _serializer().loads(token, max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None
