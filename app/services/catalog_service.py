"""Master data: users, customers, products and raw materials."""
import logging
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import ConsistencyViolation, NotFoundError, StateError, ValidationError
from app.core.money import to_decimal, round_money
from app.core.permissions import PermissionChecker
from app.core.security import get_password_hash
from app.models.audit_log import AuditAction
from app.models.customer import Customer
from app.models.product import Product, RawMaterial
from app.models.user import User, UserRole
from app.services.audit_service import AuditService


logger = logging.getLogger(__name__)


class CatalogService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ==================== USERS ====================

    async def create_user(
        self,
        actor: ActorContext,
        username: str,
        password: str,
        full_name: str,
        role: UserRole,
        email: Optional[str] = None,
    ) -> User:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="create users")

        username = username.strip()
        if not username or not full_name.strip():
            raise ValidationError("Username and full name are required.")
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters.")

        existing = await self.db.scalar(select(func.count(User.id)).where(User.username == username))
        if existing:
            raise ConsistencyViolation(f"Username '{username}' is already taken.")

        user = User(
            username=username,
            full_name=full_name.strip(),
            email=email,
            password_hash=get_password_hash(password),
            role=role.value,
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"User {username} created with role {role.value}")

        await self.audit.log(
            AuditAction.CREATE, "users", f"Created {role.value} account {username}.",
            entity_id=user.id, actor=actor,
        )
        return user

    async def set_user_active(self, actor: ActorContext, user_id: int, is_active: bool) -> User:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="activate or deactivate users")
        if user_id == actor.user_id and not is_active:
            raise StateError("You cannot deactivate your own account.")

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User #{user_id} not found.")

        user.is_active = is_active
        await self.db.flush()

        state = "Activated" if is_active else "Deactivated"
        await self.audit.log(
            AuditAction.UPDATE, "users", f"{state} user {user.username}.",
            entity_id=user.id, actor=actor,
        )
        return user

    async def list_users(self, actor: ActorContext, role: Optional[UserRole] = None) -> List[User]:
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="list users"
        )
        query = select(User).order_by(User.username)
        if role is not None:
            query = query.where(User.role == role.value)
        return list((await self.db.execute(query)).scalars().all())

    # ==================== CUSTOMERS ====================

    async def create_customer(
        self,
        actor: ActorContext,
        name: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Customer:
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.DISTRIBUTOR, action="add customers"
        )
        if not name or not name.strip():
            raise ValidationError("Customer name is required.")

        customer = Customer(
            name=name.strip(),
            phone=phone,
            email=email,
            address=address,
            created_by=actor.user_id,
        )
        self.db.add(customer)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, "customers", f"Added customer {customer.name}.",
            entity_id=customer.id, actor=actor,
        )
        return customer

    async def list_customers(self, actor: ActorContext) -> List[Customer]:
        """Owners see every customer, distributors the ones they added."""
        query = select(Customer).order_by(Customer.name)
        if not actor.is_owner:
            query = query.where(Customer.created_by == actor.user_id)
        return list((await self.db.execute(query)).scalars().all())

    # ==================== PRODUCTS ====================

    async def create_product(
        self,
        actor: ActorContext,
        name: str,
        sku: str,
        unit_price: Decimal = Decimal("0"),
        description: Optional[str] = None,
    ) -> Product:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="add products")

        sku = sku.strip().upper()
        unit_price = round_money(unit_price)
        if not name or not name.strip() or not sku:
            raise ValidationError("Product name and SKU are required.")
        if unit_price < 0:
            raise ValidationError("Unit price cannot be negative.")

        if await self.db.scalar(select(func.count(Product.id)).where(Product.sku == sku)):
            raise ConsistencyViolation(f"SKU '{sku}' already exists.")

        product = Product(name=name.strip(), sku=sku, unit_price=unit_price, description=description)
        self.db.add(product)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, "products", f"Added product {product.name} ({sku}).",
            entity_id=product.id, actor=actor,
        )
        return product

    async def list_products(self) -> List[Product]:
        return list((await self.db.execute(select(Product).order_by(Product.name))).scalars().all())

    # ==================== RAW MATERIALS ====================

    async def create_material(
        self,
        actor: ActorContext,
        name: str,
        unit: str,
        min_stock_level: Decimal = Decimal("0"),
    ) -> RawMaterial:
        """
        Register a raw material with zero stock.

        Stock only enters through purchases so that every unit on hand is
        backed by a purchase record.
        """
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="add raw materials"
        )
        min_stock_level = to_decimal(min_stock_level)
        if not name or not name.strip() or not unit or not unit.strip():
            raise ValidationError("Material name and unit are required.")
        if min_stock_level < 0:
            raise ValidationError("Minimum stock level cannot be negative.")

        material = RawMaterial(
            name=name.strip(),
            unit=unit.strip(),
            stock_quantity=Decimal("0"),
            min_stock_level=min_stock_level,
        )
        self.db.add(material)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, "materials", f"Added raw material {material.name} ({material.unit}).",
            entity_id=material.id, actor=actor,
        )
        return material

    async def list_materials(self, low_stock_only: bool = False) -> List[RawMaterial]:
        materials = list((await self.db.execute(select(RawMaterial).order_by(RawMaterial.name))).scalars().all())
        if low_stock_only:
            materials = [material for material in materials if material.is_low_stock]
        return materials
