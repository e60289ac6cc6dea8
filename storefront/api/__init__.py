# storefront/api/__init__.py
from fastapi import FastAPI
from storefront.api.routers import carts, orders, payments, health


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Settlement Service",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app
