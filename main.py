import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import products
import users
from config import DEFAULT_JWT_SECRET, Settings, get_settings
from database import Store, connect
from errors import envelope, register_error_handlers
from logging_setup import get_logger, init_logging
from schemas import (
    ChangePasswordRequest,
    LoginRequest,
    ProductCreate,
    ProductUpdate,
    StockUpdate,
    UserCreate,
    UserUpdate,
)

API_VERSION = "1.0.0"
OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"

ObjectIdStr = Annotated[str, Path(pattern=OBJECT_ID_PATTERN, description="24-character id")]

logger = get_logger("ecommerce_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = connect(settings)
    if app.state.store is not None:
        try:
            app.state.store.ensure_indexes()
        except PyMongoError as e:
            logger.error("Could not create indexes: %s", e)
    logger.info("E-Commerce API started (docs at /docs)")
    yield
    if owns_store and app.state.store is not None:
        app.state.store.close()
    logger.info("E-Commerce API stopped")


def get_store(request: Request) -> Store:
    store = request.app.state.store
    if store is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    settings = settings or get_settings()
    init_logging(settings.log_level)
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; using the built-in fallback secret")

    app = FastAPI(
        title="E-Commerce API",
        version=API_VERSION,
        description="User accounts and product catalog backed by MongoDB",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "users", "description": "User management endpoints"},
            {"name": "products", "description": "Product management endpoints"},
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_error_handlers(app)

    @app.get("/")
    def read_root():
        return {
            "message": "Welcome to the E-Commerce API",
            "version": API_VERSION,
            "documentation": "/docs",
            "endpoints": {"users": "/api/users", "products": "/api/products"},
        }

    @app.get("/health")
    def health(request: Request):
        store = request.app.state.store
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "database": "Connected" if store is not None and store.ping() else "Not Connected",
        }

    # ---------- Users ----------

    @app.post("/api/users/register", status_code=201, tags=["users"], summary="Register a new user")
    def register(payload: UserCreate, store: Store = Depends(get_store)):
        user = users.register(store, payload.model_dump(by_alias=True, exclude_none=True))
        return envelope(True, message="User created successfully", data=user)

    @app.post("/api/users/login", tags=["users"], summary="User login")
    def login(
        payload: LoginRequest,
        store: Store = Depends(get_store),
        settings: Settings = Depends(get_app_settings),
    ):
        result = users.login(store, payload.email, payload.password, settings)
        return envelope(True, message="Login successful", data=result)

    @app.get("/api/users", tags=["users"], summary="Get all active users")
    def list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        store: Store = Depends(get_store),
    ):
        result = users.list_users(store, page, limit)
        return envelope(True, data=result["items"], pagination=result["pagination"])

    @app.get("/api/users/{user_id}", tags=["users"], summary="Get user by ID")
    def get_user(user_id: ObjectIdStr, store: Store = Depends(get_store)):
        return envelope(True, data=users.get_user(store, user_id))

    @app.put("/api/users/{user_id}", tags=["users"], summary="Update user")
    def update_user(user_id: ObjectIdStr, payload: UserUpdate, store: Store = Depends(get_store)):
        user = users.update_user(store, user_id, payload.model_dump(by_alias=True, exclude_unset=True))
        return envelope(True, message="User updated successfully", data=user)

    @app.delete("/api/users/{user_id}", tags=["users"], summary="Soft delete a user")
    def delete_user(user_id: ObjectIdStr, store: Store = Depends(get_store)):
        users.delete_user(store, user_id)
        return envelope(True, message="User deleted successfully")

    @app.post("/api/users/{user_id}/change-password", tags=["users"], summary="Change password")
    def change_password(
        user_id: ObjectIdStr,
        payload: ChangePasswordRequest,
        store: Store = Depends(get_store),
    ):
        users.change_password(store, user_id, payload.current_password, payload.new_password)
        return envelope(True, message="Password changed successfully")

    # ---------- Products ----------

    @app.post("/api/products", status_code=201, tags=["products"], summary="Create a new product")
    def create_product(payload: ProductCreate, store: Store = Depends(get_store)):
        product = products.create_product(store, payload.model_dump(by_alias=True, exclude_none=True))
        return envelope(True, message="Product created successfully", data=product)

    @app.get("/api/products", tags=["products"], summary="Get all products")
    def list_products(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        category: Optional[str] = None,
        min_price: Optional[float] = Query(None, ge=0, alias="minPrice"),
        max_price: Optional[float] = Query(None, ge=0, alias="maxPrice"),
        search: Optional[str] = None,
        sort_by: str = Query("createdAt", alias="sortBy", pattern=r"^[A-Za-z_][A-Za-z0-9_.]*$"),
        sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
        store: Store = Depends(get_store),
    ):
        result = products.list_products(
            store, page, limit, category, min_price, max_price, search, sort_by, sort_order
        )
        return envelope(True, data=result["items"], pagination=result["pagination"])

    @app.get("/api/products/featured", tags=["products"], summary="Get featured products")
    def featured_products(limit: int = Query(10, ge=1, le=100), store: Store = Depends(get_store)):
        return envelope(True, data=products.get_featured(store, limit))

    @app.get("/api/products/categories", tags=["products"], summary="Get all categories")
    def list_categories(store: Store = Depends(get_store)):
        return envelope(True, data=products.list_categories(store))

    @app.get("/api/products/category/{category}", tags=["products"], summary="Get products by category")
    def products_by_category(
        category: str,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        store: Store = Depends(get_store),
    ):
        result = products.get_by_category(store, category, page, limit)
        return envelope(True, data=result["items"], pagination=result["pagination"])

    @app.get("/api/products/sku/{sku}", tags=["products"], summary="Get product by SKU")
    def product_by_sku(sku: str, store: Store = Depends(get_store)):
        return envelope(True, data=products.get_product_by_sku(store, sku))

    @app.get("/api/products/{product_id}", tags=["products"], summary="Get product by ID")
    def get_product(product_id: ObjectIdStr, store: Store = Depends(get_store)):
        return envelope(True, data=products.get_product(store, product_id))

    @app.put("/api/products/{product_id}", tags=["products"], summary="Update product")
    def update_product(product_id: ObjectIdStr, payload: ProductUpdate, store: Store = Depends(get_store)):
        product = products.update_product(
            store, product_id, payload.model_dump(by_alias=True, exclude_unset=True)
        )
        return envelope(True, message="Product updated successfully", data=product)

    @app.delete("/api/products/{product_id}", tags=["products"], summary="Soft delete a product")
    def delete_product(product_id: ObjectIdStr, store: Store = Depends(get_store)):
        products.delete_product(store, product_id)
        return envelope(True, message="Product deleted successfully")

    @app.patch("/api/products/{product_id}/stock", tags=["products"], summary="Update product stock")
    def update_stock(product_id: ObjectIdStr, payload: StockUpdate, store: Store = Depends(get_store)):
        result = products.adjust_stock(store, product_id, payload.quantity, payload.operation)
        return envelope(True, message="Stock updated successfully", data=result)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
