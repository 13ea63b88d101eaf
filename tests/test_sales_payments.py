"""Sales, their wholesale settlement, payments and payment reminders."""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    ConsistencyViolation,
    InsufficientStock,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from app.models.fund import FundReturn
from app.models.inventory import Location
from app.models.sales import PaymentMethod, PaymentStatus, Sale
from app.services.deletion_service import DeletionService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.fund_service import FundService
from app.services.payment_service import PaymentService, derive_payment_status
from app.services.sale_service import SaleService
from tests.conftest import TODAY, stock_wholesale


async def wholesale_quantity(db, product_id) -> int:
    entry = await FinishedGoodsService(db).get_entry(product_id, Location.WHOLESALE, lock=True)
    return entry.quantity if entry else 0


async def sell(db, actor, customer, product, quantity=8, unit_price="1000", **kwargs):
    return await SaleService(db).save_sale(
        actor, customer.id, TODAY,
        items=[{"product_id": product.id, "quantity": quantity, "unit_price": Decimal(unit_price)}],
        **kwargs,
    )


@pytest.fixture
async def stocked(db, product):
    await stock_wholesale(db, product.id, 10)
    return product


class TestSaveSale:

    async def test_debits_wholesale_and_computes_totals(self, db, distributor, customer, stocked):
        sale = await sell(
            db, distributor, customer, stocked,
            discount_amount=Decimal("500"), tax_amount=Decimal("360"), shipping_cost=Decimal("140"),
        )

        assert sale.invoice_number.startswith("INV-")
        assert sale.total_amount == Decimal("8000.00")
        assert sale.net_amount == Decimal("8000.00")
        assert sale.payment_status == PaymentStatus.UNPAID.value
        assert await wholesale_quantity(db, stocked.id) == 2

    async def test_insufficient_wholesale_changes_nothing(self, db, distributor, customer, stocked):
        with pytest.raises(InsufficientStock):
            await sell(db, distributor, customer, stocked, quantity=11)
        await db.rollback()

        assert await wholesale_quantity(db, stocked.id) == 10
        assert await db.scalar(select(func.count(Sale.id))) == 0

    async def test_needs_items(self, db, distributor, customer):
        with pytest.raises(ValidationError):
            await SaleService(db).save_sale(distributor, customer.id, TODAY, items=[])

    async def test_discount_cannot_exceed_total(self, db, distributor, customer, stocked):
        with pytest.raises(ValidationError):
            await sell(db, distributor, customer, stocked, quantity=1, discount_amount=Decimal("1500"))

    async def test_production_manager_cannot_sell(self, db, manager, customer, stocked):
        with pytest.raises(PermissionDeniedError):
            await sell(db, manager, customer, stocked)


class TestEditSale:

    async def test_edit_only_needs_stock_for_the_increase(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=8)

        edited = await SaleService(db).save_sale(
            distributor, customer.id, TODAY,
            items=[{"product_id": stocked.id, "quantity": 10, "unit_price": Decimal("1000")}],
            sale_id=sale.id,
        )

        assert edited.id == sale.id
        assert edited.net_amount == Decimal("10000.00")
        assert await wholesale_quantity(db, stocked.id) == 0
        items = await SaleService(db).get_items(sale.id)
        assert [(item.quantity, item.total_price) for item in items] == [(10, Decimal("10000.00"))]

    async def test_edit_beyond_stock_changes_nothing(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=8)
        await db.commit()

        with pytest.raises(InsufficientStock):
            await SaleService(db).save_sale(
                distributor, customer.id, TODAY,
                items=[{"product_id": stocked.id, "quantity": 11, "unit_price": Decimal("1000")}],
                sale_id=sale.id,
            )
        await db.rollback()

        assert await wholesale_quantity(db, stocked.id) == 2
        items = await SaleService(db).get_items(sale.id)
        assert [item.quantity for item in items] == [8]

    async def test_shrinking_a_sale_returns_stock(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=8)

        await SaleService(db).save_sale(
            distributor, customer.id, TODAY,
            items=[{"product_id": stocked.id, "quantity": 3, "unit_price": Decimal("1000")}],
            sale_id=sale.id,
        )

        assert await wholesale_quantity(db, stocked.id) == 7

    async def test_paid_sale_is_locked(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)
        await PaymentService(db).record_payment(distributor, sale.id, Decimal("100"), PaymentMethod.CASH)

        with pytest.raises(StateError):
            await sell(db, distributor, customer, stocked, quantity=2, sale_id=sale.id)

    async def test_other_distributor_cannot_edit(self, db, distributor, other_distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)

        with pytest.raises(PermissionDeniedError):
            await sell(db, other_distributor, customer, stocked, quantity=2, sale_id=sale.id)


class TestPayments:

    async def test_partial_then_paid(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=2)
        payments = PaymentService(db)

        _, status, remaining = await payments.record_payment(distributor, sale.id, Decimal("1500"), PaymentMethod.CASH)
        assert status == PaymentStatus.PARTIAL
        assert remaining == Decimal("500.00")

        _, status, remaining = await payments.record_payment(
            distributor, sale.id, Decimal("500"), PaymentMethod.BANK_TRANSFER, reference_number="UTR123",
        )
        assert status == PaymentStatus.PAID
        assert remaining == Decimal("0.00")

        with pytest.raises(StateError):
            await payments.record_payment(distributor, sale.id, Decimal("1"), PaymentMethod.CASH)

    async def test_overpayment_rejected(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)

        with pytest.raises(ConsistencyViolation):
            await PaymentService(db).record_payment(distributor, sale.id, Decimal("1000.02"), PaymentMethod.CASH)

    async def test_only_the_seller_records_payments(self, db, distributor, other_distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)

        with pytest.raises(PermissionDeniedError):
            await PaymentService(db).record_payment(other_distributor, sale.id, Decimal("10"), PaymentMethod.CASH)

    async def test_void_rederives_status(self, db, owner, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)
        payments = PaymentService(db)
        payment, _, _ = await payments.record_payment(distributor, sale.id, Decimal("1000"), PaymentMethod.CASH)

        voided_sale, status = await payments.void_payment(owner, payment.id, reason="Cheque bounced")

        assert status == PaymentStatus.UNPAID
        assert voided_sale.payment_status == PaymentStatus.UNPAID.value
        assert await payments.get_paid_total(sale.id) == Decimal("0.00")

    @pytest.mark.parametrize(
        "paid, expected",
        [
            ("0", PaymentStatus.UNPAID),
            ("0.01", PaymentStatus.PARTIAL),
            ("999.99", PaymentStatus.PAID),
            ("1000", PaymentStatus.PAID),
        ],
    )
    def test_derive_payment_status(self, paid, expected):
        assert derive_payment_status(Decimal(paid), Decimal("1000.00")) == expected


class TestReminders:

    async def test_lists_outstanding_sales_by_due_date(self, db, distributor, other_distributor, customer, stocked):
        later = await sell(db, distributor, customer, stocked, quantity=1, payment_due_date=TODAY + timedelta(days=20))
        sooner = await sell(db, distributor, customer, stocked, quantity=1, payment_due_date=TODAY + timedelta(days=5))
        settled = await sell(db, distributor, customer, stocked, quantity=1)
        await PaymentService(db).record_payment(distributor, settled.id, Decimal("1000"), PaymentMethod.CASH)
        await PaymentService(db).record_payment(distributor, later.id, Decimal("400"), PaymentMethod.CASH)

        reminders = await SaleService(db).get_payment_reminders(distributor)

        assert [r["sale_id"] for r in reminders] == [sooner.id, later.id]
        assert reminders[1]["amount_due"] == Decimal("600.00")
        assert reminders[0]["customer_name"] == customer.name
        assert await SaleService(db).get_payment_reminders(other_distributor) == []

    async def test_mark_contacted_appends_note(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1, notes="Regular buyer")

        updated = await SaleService(db).mark_reminder_contacted(distributor, sale.id, notes="Will pay Friday")

        assert updated.notes.startswith("Regular buyer\n[Reminder ")
        assert updated.notes.endswith("Customer contacted. Will pay Friday")


class TestDeleteSale:

    async def test_returns_items_to_wholesale(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=8)

        await DeletionService(db).delete_sale(distributor, sale.id, reason="Customer cancelled")

        assert await wholesale_quantity(db, stocked.id) == 10
        assert await db.get(Sale, sale.id) is None

    async def test_refused_while_payments_exist(self, db, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=1)
        await PaymentService(db).record_payment(distributor, sale.id, Decimal("10"), PaymentMethod.CASH)

        with pytest.raises(StateError):
            await DeletionService(db).delete_sale(distributor, sale.id, reason="Mistake")

    async def test_refused_while_fund_returns_exist(self, db, owner, distributor, customer, stocked):
        sale = await sell(db, distributor, customer, stocked, quantity=2)
        payment, _, _ = await PaymentService(db).record_payment(distributor, sale.id, Decimal("2000"), PaymentMethod.CASH)
        await FundService(db).request_fund_return(distributor, sale.id, Decimal("2000"))
        await PaymentService(db).void_payment(owner, payment.id, reason="Cheque bounced")
        await db.commit()

        with pytest.raises(StateError, match="fund returns"):
            await DeletionService(db).delete_sale(distributor, sale.id, reason="Mistake")
        await db.rollback()

        assert await wholesale_quantity(db, stocked.id) == 8
        assert await db.get(Sale, sale.id) is not None
        assert await db.scalar(select(func.count(FundReturn.id))) == 1
