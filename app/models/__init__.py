from app.models.user import User, UserRole
from app.models.customer import Customer
from app.models.product import Product, RawMaterial
from app.models.purchase import Purchase
from app.models.manufacturing import (
    BatchStatus,
    BATCH_TRANSITIONS,
    CostType,
    QualityStatus,
    ManufacturingBatch,
    MaterialUsage,
    ManufacturingCost,
    QualityCheck,
    ProductAdjustment,
)
from app.models.inventory import Location, TransferStatus, FinishedGoodsEntry, InventoryTransfer
from app.models.fund import (
    FundType,
    FundStatus,
    FundUsageType,
    FundReturnStatus,
    Fund,
    FundUsage,
    FundReturn,
)
from app.models.sales import PaymentStatus, PaymentMethod, Sale, SaleItem, Payment
from app.models.audit_log import AuditAction, AuditLog
from app.models.notifications import NotificationType, Notification
from app.models.idempotency import IdempotencyRecord

__all__ = [
    "User", "UserRole",
    "Customer",
    "Product", "RawMaterial",
    "Purchase",
    "BatchStatus", "BATCH_TRANSITIONS", "CostType", "QualityStatus",
    "ManufacturingBatch", "MaterialUsage", "ManufacturingCost", "QualityCheck", "ProductAdjustment",
    "Location", "TransferStatus", "FinishedGoodsEntry", "InventoryTransfer",
    "FundType", "FundStatus", "FundUsageType", "FundReturnStatus", "Fund", "FundUsage", "FundReturn",
    "PaymentStatus", "PaymentMethod", "Sale", "SaleItem", "Payment",
    "AuditAction", "AuditLog",
    "NotificationType", "Notification",
    "IdempotencyRecord",
]
