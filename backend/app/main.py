from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.logging import configure_logging
from backend.services.errors import StockLedgerError

configure_logging()

app = FastAPI(title="POS Stock Ledger", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(StockLedgerError)
async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_dict()})
