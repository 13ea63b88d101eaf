"""Raw material purchases: stock credit, fund debit, editing and deletion."""
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import InsufficientFunds, InsufficientStock, PermissionDeniedError, ValidationError
from app.models.fund import FundStatus
from app.models.product import RawMaterial
from app.services.batch_service import BatchService
from app.services.deletion_service import DeletionService
from app.services.fund_service import FundService
from app.services.purchase_service import PurchaseService
from tests.conftest import TODAY


@pytest.fixture
async def fund(db, owner, users):
    fund = await FundService(db).allocate(owner, users.owner.id, users.manager.id, Decimal("5000"))
    await db.commit()
    return fund


@pytest.fixture
async def thread(db):
    """A material with nothing on hand."""
    material = RawMaterial(name="Polyester Thread", unit="spool", stock_quantity=Decimal("0"))
    db.add(material)
    await db.commit()
    return material


async def balance_of(db, fund_id) -> Decimal:
    return (await FundService(db).get_fund(fund_id, lock=True)).balance


async def test_purchase_credits_stock(db, manager, fabric):
    purchase = await PurchaseService(db).save_purchase(
        manager, fabric.id, Decimal("25"), Decimal("80"), Decimal("2000"), TODAY, supplier="Arvind Mills",
    )

    assert purchase.id is not None
    await db.refresh(fabric)
    assert fabric.stock_quantity == Decimal("225")


async def test_purchase_from_fund_debits_fund(db, manager, fabric, fund):
    await PurchaseService(db).save_purchase(
        manager, fabric.id, Decimal("25"), Decimal("80"), Decimal("2000"), TODAY, fund_id=fund.id,
    )

    assert await balance_of(db, fund.id) == Decimal("3000.00")


async def test_purchase_exceeding_fund_changes_nothing(db, manager, fabric, fund):
    with pytest.raises(InsufficientFunds):
        await PurchaseService(db).save_purchase(
            manager, fabric.id, Decimal("100"), Decimal("80"), Decimal("8000"), TODAY, fund_id=fund.id,
        )
    await db.rollback()

    await db.refresh(fabric)
    assert fabric.stock_quantity == Decimal("200")
    assert await balance_of(db, fund.id) == Decimal("5000.00")


async def test_total_must_match_quantity_times_price(db, manager, fabric):
    with pytest.raises(ValidationError):
        await PurchaseService(db).save_purchase(
            manager, fabric.id, Decimal("10"), Decimal("80"), Decimal("900"), TODAY,
        )


async def test_total_within_tolerance_is_accepted(db, manager, fabric):
    purchase = await PurchaseService(db).save_purchase(
        manager, fabric.id, Decimal("3"), Decimal("33.33"), Decimal("100.00"), TODAY,
    )

    assert purchase.total_amount == Decimal("100.00")


async def test_distributor_cannot_purchase(db, distributor, fabric):
    with pytest.raises(PermissionDeniedError):
        await PurchaseService(db).save_purchase(
            distributor, fabric.id, Decimal("1"), Decimal("80"), Decimal("80"), TODAY,
        )


async def test_edit_reverts_then_reapplies(db, manager, fabric, fund):
    service = PurchaseService(db)
    purchase = await service.save_purchase(
        manager, fabric.id, Decimal("10"), Decimal("100"), Decimal("1000"), TODAY, fund_id=fund.id,
    )

    await service.save_purchase(
        manager, fabric.id, Decimal("20"), Decimal("100"), Decimal("2000"), TODAY,
        fund_id=fund.id, purchase_id=purchase.id,
    )

    await db.refresh(fabric)
    assert fabric.stock_quantity == Decimal("220")
    assert await balance_of(db, fund.id) == Decimal("3000.00")
    assert len(await FundService(db).get_usage(fund.id)) == 1


async def test_edit_can_move_purchase_off_a_fund(db, manager, fabric, fund):
    service = PurchaseService(db)
    purchase = await service.save_purchase(
        manager, fabric.id, Decimal("50"), Decimal("100"), Decimal("5000"), TODAY, fund_id=fund.id,
    )
    assert (await FundService(db).get_fund(fund.id, lock=True)).status == FundStatus.DEPLETED.value

    await service.save_purchase(
        manager, fabric.id, Decimal("50"), Decimal("100"), Decimal("5000"), TODAY, purchase_id=purchase.id,
    )

    refreshed = await FundService(db).get_fund(fund.id, lock=True)
    assert refreshed.balance == Decimal("5000.00")
    assert refreshed.status == FundStatus.ACTIVE.value


async def test_edit_refused_once_stock_is_consumed(db, manager, product, thread):
    service = PurchaseService(db)
    purchase = await service.save_purchase(manager, thread.id, Decimal("10"), Decimal("5"), Decimal("50"), TODAY)
    await BatchService(db).create_batch(
        manager, product.id, 10, TODAY, TODAY + timedelta(days=3),
        materials=[{"material_id": thread.id, "quantity": Decimal("6")}],
    )

    with pytest.raises(InsufficientStock):
        await service.save_purchase(
            manager, thread.id, Decimal("8"), Decimal("5"), Decimal("40"), TODAY, purchase_id=purchase.id,
        )


async def test_delete_reverses_stock_and_fund(db, manager, fabric, fund):
    purchase = await PurchaseService(db).save_purchase(
        manager, fabric.id, Decimal("10"), Decimal("100"), Decimal("1000"), TODAY, fund_id=fund.id,
    )

    await DeletionService(db).delete_purchase(manager, purchase.id, reason="Entered twice")

    await db.refresh(fabric)
    assert fabric.stock_quantity == Decimal("200")
    assert await balance_of(db, fund.id) == Decimal("5000.00")
    assert await FundService(db).get_usage(fund.id) == []


async def test_delete_requires_reason(db, manager, fabric):
    purchase = await PurchaseService(db).save_purchase(
        manager, fabric.id, Decimal("1"), Decimal("100"), Decimal("100"), TODAY,
    )

    with pytest.raises(ValidationError):
        await DeletionService(db).delete_purchase(manager, purchase.id, reason="")


async def test_delete_refused_once_stock_is_consumed(db, manager, product, thread, fund):
    purchase = await PurchaseService(db).save_purchase(
        manager, thread.id, Decimal("10"), Decimal("5"), Decimal("50"), TODAY, fund_id=fund.id,
    )
    await BatchService(db).create_batch(
        manager, product.id, 10, TODAY, TODAY + timedelta(days=3),
        materials=[{"material_id": thread.id, "quantity": Decimal("6")}],
    )
    await db.commit()

    with pytest.raises(InsufficientStock):
        await DeletionService(db).delete_purchase(manager, purchase.id, reason="Entered twice")
    await db.rollback()

    await db.refresh(thread)
    assert thread.stock_quantity == Decimal("4")
    assert await balance_of(db, fund.id) == Decimal("4950.00")
    assert len(await FundService(db).get_usage(fund.id)) == 1
    assert await PurchaseService(db).get_purchase(purchase.id) is not None
