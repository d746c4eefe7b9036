from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from routes.api import handle_http_exception, handle_validation_error, router
from services import generation_service

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
app.include_router(router)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(HTTPException, handle_http_exception)


@app.on_event("startup")
async def startup() -> None:
    await generation_service.startup()


@app.on_event("shutdown")
async def shutdown() -> None:
    await generation_service.shutdown()
