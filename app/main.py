import logging

from fastapi import FastAPI

from app.core.config import settings
from app.api.routes import auto_assign, shift_requests

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Airport Shift Optimizer API", version="0.1.0")

app.include_router(auto_assign.router, prefix="/api/v1")
app.include_router(shift_requests.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "ok"}
