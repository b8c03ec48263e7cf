from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sourcing_agent.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sourcing Copilot", version="0.1.0")

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if os.environ.get("FRONTEND_URL"):
    origins.append(os.environ["FRONTEND_URL"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "sourcing-copilot"}


from sourcing_agent.api.users import close_api_client, router as users_router  # noqa: E402

app.include_router(users_router)


@app.on_event("startup")
async def startup_check_backend_config():
    if not settings.graphql_endpoint or not settings.graphql_bearer_token:
        logger.warning("GRAPHQL_ENDPOINT or GRAPHQL_BEARER_TOKEN not set, project actions will fail")
    if not settings.supplier_api_url or not settings.supplier_api_token:
        logger.warning("SUPPLIER_API_URL or SUPPLIER_API_TOKEN not set, supplier search will fail")


@app.on_event("shutdown")
async def shutdown_api_client():
    await close_api_client()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sourcing_agent.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
