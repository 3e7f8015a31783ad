from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging, time

from config import settings
from api.v1.router import router as v1_router
from api.wind_router import router as wind_router
from services.harvester import harvest_scheduler

logger = logging.getLogger("windhub")
if not logger.handlers:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.app_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
        return response

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "endpoints": ["/wind/latest", "/wind/nearest?timeIso=ISO_TIME_STRING&searchLimit=DAYS"],
        }

    @app.get("/health", tags=["meta"])
    async def health():
        return JSONResponse(
            {"status": "ok", "version": settings.app_version, "harvest_enabled": settings.harvest_enabled}
        )

    app.include_router(wind_router)
    app.include_router(v1_router)

    @app.on_event("startup")
    async def _startup():
        app.state.started_at = datetime.now(timezone.utc)
        if settings.harvest_enabled:
            logger.info("GFS harvest enabled; starting scheduler...")
            await harvest_scheduler.start()
        else:
            logger.info("GFS harvest disabled (set HARVEST_ENABLED=true to enable).")

    @app.on_event("shutdown")
    async def _shutdown():
        await harvest_scheduler.close()

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
