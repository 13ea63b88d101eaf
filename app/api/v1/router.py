from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Access Control
    auth,
    users,
    # Catalog
    customers,
    products,
    materials,
    # Manufacturing
    batches,
    # Inventory
    inventory,
    transfers,
    # Funds & Procurement
    funds,
    fund_returns,
    purchases,
    # Sales
    sales,
    payments,
    # System
    audit_logs,
    notifications,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Access Control ====================
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"]
)
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["Users"]
)

# ==================== Catalog ====================
api_router.include_router(
    customers.router,
    prefix="/customers",
    tags=["Customers"]
)
api_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"]
)
api_router.include_router(
    materials.router,
    prefix="/materials",
    tags=["Raw Materials"]
)

# ==================== Manufacturing ====================
api_router.include_router(
    batches.router,
    prefix="/batches",
    tags=["Manufacturing"]
)

# ==================== Inventory ====================
api_router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["Inventory"]
)
api_router.include_router(
    transfers.router,
    prefix="/transfers",
    tags=["Inventory Transfers"]
)

# ==================== Funds & Procurement ====================
api_router.include_router(
    funds.router,
    prefix="/funds",
    tags=["Funds"]
)
api_router.include_router(
    fund_returns.router,
    prefix="/fund-returns",
    tags=["Fund Returns"]
)
api_router.include_router(
    purchases.router,
    prefix="/purchases",
    tags=["Purchases"]
)

# ==================== Sales ====================
api_router.include_router(
    sales.router,
    prefix="/sales",
    tags=["Sales"]
)
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== System ====================
api_router.include_router(
    audit_logs.router,
    prefix="/audit-logs",
    tags=["Audit Logs"]
)
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"]
)
