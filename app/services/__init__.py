# Services module
from app.services.auth_service import AuthService
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.idempotency_service import IdempotencyService
from app.services.catalog_service import CatalogService

# Ledger services
from app.services.stock_service import StockService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.fund_service import FundService
from app.services.batch_service import BatchService
from app.services.transfer_service import TransferService
from app.services.purchase_service import PurchaseService
from app.services.sale_service import SaleService
from app.services.payment_service import PaymentService
from app.services.deletion_service import DeletionService

__all__ = [
    "AuthService",
    "AuditService",
    "NotificationService",
    "IdempotencyService",
    "CatalogService",
    # Ledger
    "StockService",
    "FinishedGoodsService",
    "FundService",
    "BatchService",
    "TransferService",
    "PurchaseService",
    "SaleService",
    "PaymentService",
    "DeletionService",
]
