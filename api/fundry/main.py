import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .db import init_db
from .errors import FundryError
from .routers import auth, campaigns, currency, investments, notifications, payments, uploads, users
from .services.currency import CurrencyConverter
from .services.payments import BudpayGateway, PaymentGateways, StripeGateway

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Fundry API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FundryError)
async def fundry_error_handler(request: Request, exc: FundryError):
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def on_startup():
    init_db()
    if not hasattr(app.state, "converter"):
        app.state.converter = CurrencyConverter()
    if not hasattr(app.state, "gateways"):
        app.state.gateways = PaymentGateways(StripeGateway(), BudpayGateway())


@app.on_event("shutdown")
def on_shutdown():
    converter = getattr(app.state, "converter", None)
    if converter is not None:
        converter.close()


app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["campaigns"])
app.include_router(investments.router, prefix="/api/investments", tags=["investments"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(currency.router, prefix="/api/exchange-rate", tags=["currency"])
app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])


@app.get("/")
def root():
    return {"ok": True, "service": "fundry-api"}
