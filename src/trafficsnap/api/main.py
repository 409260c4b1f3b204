from fastapi import FastAPI

from ..core.config import settings
from ..core.logging_config import configure_logging
from .routes import snapshots, traffic

configure_logging(settings.log_level)

app = FastAPI(title="trafficsnap")


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


app.include_router(traffic.router, prefix="/v1")
app.include_router(snapshots.router, prefix="/v1")
