from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from storefront.core.config import settings
from storefront.core.exceptions import StoreError
from storefront.core.logging import configure_logging, get_logger
from storefront.db.session import create_db_and_tables

# Import models to ensure they are registered with SQLModel metadata
from storefront.models import User, Product, Cart, CartItem  # noqa: F401

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    create_db_and_tables()
    logger.info(f"{settings.PROJECT_NAME} started")
    yield

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan,
    description="Catalog and cart API for the storefront"
)

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )

@app.get("/health")
def health():
    return {"status": "ok"}

from storefront.routers import auth, products, cart, admin

app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(products.router, prefix="/api/v1/products", tags=["products"])
app.include_router(cart.router, prefix="/api/v1/cart", tags=["cart"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])

# Add CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
