# tac_broker/main.py
import os
import uvicorn
from fastapi import FastAPI
from tac_broker.routers.gunbroker_router import router as gunbroker_router, gunbroker_error_handler
from tac_broker.gunbroker.errors import GunbrokerError
from tac_broker.infrastructure.database import init_db
from tac_broker.middleware.logging import RequestIdMiddleware
import structlog

def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
    )

configure_structlog()
logger = structlog.get_logger()

app = FastAPI(title="TAC Broker")

app.add_middleware(RequestIdMiddleware)
app.add_exception_handler(GunbrokerError, gunbroker_error_handler)

app.include_router(gunbroker_router)

@app.on_event("startup")
async def on_startup():
    await init_db()
    logger.info("app_startup")

@app.get("/health")
async def health():
    return {"status": "ok", "service": "tac-broker"}

if __name__ == "__main__":
    uvicorn.run("tac_broker.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
