import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from order_api.api.errors import register_error_handlers
from order_api.api.routes import categories, orders, products
from order_api.core.config import LOG_LEVEL
from order_api.core.database import init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield

app = FastAPI(
    title="Order Management API",
    description="Categories, products and orders with stock reservation",
    version="1.0.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# Include routers
app.include_router(categories.router, prefix="/api/v1/categories", tags=["categories"])
app.include_router(products.router, prefix="/api/v1/products", tags=["products"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])

@app.get("/")
async def root():
    return {"message": "Order Management API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
