from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, status

from cartsync.core.config import Config
from cartsync.core.logging import setup_logging
from cartsync.db.database import init_db
from cartsync.exceptions import (
    create_exception_handler,
    CartItemNotFoundException,
    CartOperationException,
    CouponRejectedException,
    StockExceededException,
)
from cartsync.routers.guest_cart import router as guest_cart_router

load_dotenv()
setup_logging()

api_version = Config.API_VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    docs_url=f"/api/{api_version}/docs",
    redoc_url=f"/api/{api_version}/redoc",
    openapi_url=f"/api/{api_version}/openapi.json",
    title="Cart Sync Local API",
    description="Local guest cart persistence backing the storefront cart reconciliation.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_exception_handler(StockExceededException, create_exception_handler(status.HTTP_400_BAD_REQUEST))
app.add_exception_handler(CouponRejectedException, create_exception_handler(status.HTTP_400_BAD_REQUEST))
app.add_exception_handler(CartItemNotFoundException, create_exception_handler(status.HTTP_404_NOT_FOUND))
app.add_exception_handler(CartOperationException, create_exception_handler(status.HTTP_502_BAD_GATEWAY))

app.include_router(guest_cart_router, prefix=f'/api/{api_version}/guest-cart', tags=["Guest Cart"])


@app.get("/")
async def root():
    return {
        "message": "Cart Sync Local API",
        "version": "1.0.0",
        "status": "running",
    }
