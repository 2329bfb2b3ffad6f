import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

import config
import models  # noqa: F401  registers every table on Base.metadata
from database import Base, engine
from logging_setup import setup_logging
from routes import (
    audit_routes, catalog_routes, epi_routes, export_routes, loan_routes,
    rented_equipment_routes, site_inventory_routes, site_routes
)
from services.errors import LedgerError

logger = logging.getLogger(__name__)

app = FastAPI(title="Site Ledger")


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Site Ledger API",
        version="1.0.0",
        description="Construction site stock ledger: balances, movements, loans and rented equipment",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    for path in openapi_schema["paths"]:
        for method in openapi_schema["paths"][path]:
            if "security" not in openapi_schema["paths"][path][method]:
                openapi_schema["paths"][path][method]["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.on_event("startup")
async def startup_event():
    log_file = setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
    logger.info("Site ledger started, logging to %s", log_file)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(site_routes.router, prefix="/sites", tags=["Construction Sites"])
app.include_router(site_inventory_routes.router, prefix="/sites", tags=["Site Inventory"])
app.include_router(epi_routes.router, prefix="/sites", tags=["EPI"])
app.include_router(loan_routes.router, prefix="/sites", tags=["Tool Loans"])
app.include_router(rented_equipment_routes.router, prefix="/sites", tags=["Rented Equipment"])
app.include_router(export_routes.router, prefix="/sites", tags=["Export"])
app.include_router(catalog_routes.router, prefix="/catalog", tags=["Catalog"])
app.include_router(audit_routes.router, prefix="/audit", tags=["Audit"])
