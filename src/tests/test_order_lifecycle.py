import re
import pytest
from src.core.exceptions import (
    ConcurrencyConflictError, OrderNotFoundError, OrderStateConflictError, ValidationError,
)
from src.models.database import InventoryLog, Order, Product
from src.models.enums import OrderStatus
from src.models.schemas import CartItem, CustomerInfo, OrderCreate
from src.services.identifiers import generate_order_id, to_base36
from src.services.order_service import OrderLifecycleService


def make_order_data(customer, items=None, **info_overrides):
    if items is None:
        items = [CartItem(id="p1", name="Tee", price=35.00, quantity=2)]
    return OrderCreate(items=items, customer_info=CustomerInfo(**customer(**info_overrides)))


def get_product(test_db, product_id):
    test_db.expire_all()
    return test_db.query(Product).filter(Product.id == product_id).first()


class FakeRedis:
    def __init__(self):
        self.keys = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.keys:
            return False
        self.keys[key] = value
        return True

    def delete(self, key):
        self.keys.pop(key, None)


class ExplodingNotifier:
    def send_order_confirmation_email(self, order):
        raise RuntimeError("mail server down")

    def send_admin_order_notification(self, order):
        raise RuntimeError("mail server down")

    def send_order_status_update_email(self, order):
        raise RuntimeError("mail server down")

    def send_low_stock_alert(self, product):
        raise RuntimeError("mail server down")


class TestOrderIds:

    def test_order_id_format(self):
        order_id = generate_order_id()
        assert re.fullmatch(r"ORD-[0-9A-Z]+-[0-9A-Z]{6}", order_id)

    def test_order_ids_are_unique(self):
        assert len({generate_order_id() for _ in range(200)}) == 200

    def test_to_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"


class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_creates_pending_order(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)

        order = await service.create_order(make_order_data(customer))

        assert order.id.startswith("ORD-")
        assert order.status == "pending"
        assert order.total == 70.00
        assert order.inventory_updated is False
        assert len(order.items) == 1

    @pytest.mark.asyncio
    async def test_creation_does_not_touch_stock(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)

        await service.create_order(make_order_data(customer))

        assert get_product(test_db, "p1").inventory_quantity == 10
        assert test_db.query(InventoryLog).count() == 0

    @pytest.mark.asyncio
    async def test_round_trip_matches_input(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)
        items = [
            CartItem(id="p1", name="Tee", price=35.00, quantity=2, image="/img/tee.png"),
            CartItem(id="p3", name="Cap", price=19.99, quantity=1),
        ]
        data = make_order_data(customer, items=items, delivery_method="delivery", address="Av. 5 de Julio")

        created = await service.create_order(data)
        test_db.expire_all()
        fetched = service.get_order_by_id(created.id)

        assert fetched.total == 89.99
        assert [(i.product_id, i.name, i.price, i.quantity, i.image) for i in fetched.items] == [
            ("p1", "Tee", 35.00, 2, "/img/tee.png"),
            ("p3", "Cap", 19.99, 1, None),
        ]
        assert fetched.customer_info == {**data.customer_info.model_dump()}

    @pytest.mark.asyncio
    async def test_items_are_snapshots(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)
        order = await service.create_order(make_order_data(customer))

        product = get_product(test_db, "p1")
        product.price = 99.00
        product.name = "Renamed Tee"
        test_db.commit()

        test_db.expire_all()
        order = service.get_order_by_id(order.id)
        assert order.total == 70.00
        assert order.items[0].price == 35.00
        assert order.items[0].name == "Tee"

    @pytest.mark.asyncio
    async def test_empty_cart_rejected(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)

        with pytest.raises(ValidationError, match="Cart is empty"):
            await service.create_order(make_order_data(customer, items=[]))

        assert test_db.query(Order).count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["name", "email", "cedula", "phone", "delivery_method", "payment_method"])
    async def test_missing_required_field_rejected(self, test_db, sample_products, customer, field):
        service = OrderLifecycleService(test_db)

        with pytest.raises(ValidationError, match="Missing required customer information"):
            await service.create_order(make_order_data(customer, **{field: ""}))

        assert test_db.query(Order).count() == 0

    @pytest.mark.asyncio
    async def test_delivery_requires_address(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)

        with pytest.raises(ValidationError, match="address"):
            await service.create_order(make_order_data(customer, delivery_method="delivery"))

    @pytest.mark.asyncio
    async def test_mrw_requires_office(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db)

        with pytest.raises(ValidationError, match="MRW office"):
            await service.create_order(make_order_data(customer, delivery_method="mrw"))

        order = await service.create_order(make_order_data(customer, delivery_method="mrw", mrw_office="MRW Centro"))
        assert order.mrw_office == "MRW Centro"

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_checkout(self, test_db, sample_products, customer):
        service = OrderLifecycleService(test_db, notifier=ExplodingNotifier())

        order = await service.create_order(make_order_data(customer))

        assert order.status == "pending"
        assert test_db.query(Order).count() == 1


class TestTransitionStatus:

    async def _create(self, test_db, customer, items=None):
        service = OrderLifecycleService(test_db)
        return await service.create_order(make_order_data(customer, items=items))

    @pytest.mark.asyncio
    async def test_complete_decrements_stock_once(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db)

        updated = await service.transition_status(order.id, OrderStatus.COMPLETED, "admin-1")

        assert updated.status == "completed"
        assert updated.inventory_updated is True
        product = get_product(test_db, "p1")
        assert product.inventory_quantity == 8
        assert product.inventory_status == "in_stock"

        logs = test_db.query(InventoryLog).all()
        assert len(logs) == 1
        assert (logs[0].previous_quantity, logs[0].new_quantity) == (10, 8)
        assert logs[0].reason == "order"
        assert logs[0].order_id == order.id
        assert logs[0].user_id == "admin-1"

    @pytest.mark.asyncio
    async def test_repeated_completion_rejected(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db)
        await service.transition_status(order.id, OrderStatus.COMPLETED)

        with pytest.raises(OrderStateConflictError):
            await service.transition_status(order.id, OrderStatus.COMPLETED)

        assert get_product(test_db, "p1").inventory_quantity == 8
        assert test_db.query(InventoryLog).count() == 1

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db)
        await service.transition_status(order.id, OrderStatus.CANCELLED)

        for status in OrderStatus:
            with pytest.raises(OrderStateConflictError):
                await service.transition_status(order.id, status)

        test_db.expire_all()
        assert service.get_order_by_id(order.id).status == "cancelled"

    @pytest.mark.asyncio
    async def test_processing_cannot_go_back_to_pending(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db)
        await service.transition_status(order.id, OrderStatus.PROCESSING)

        with pytest.raises(OrderStateConflictError):
            await service.transition_status(order.id, OrderStatus.PENDING)

    @pytest.mark.asyncio
    async def test_processing_then_completed(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db)

        processing = await service.transition_status(order.id, OrderStatus.PROCESSING)
        assert processing.inventory_updated is False
        assert get_product(test_db, "p1").inventory_quantity == 10

        await service.transition_status(order.id, OrderStatus.COMPLETED)
        assert get_product(test_db, "p1").inventory_quantity == 8

    @pytest.mark.asyncio
    async def test_completion_floors_at_zero(self, test_db, sample_products, customer):
        items = [CartItem(id="p3", name="Cap", price=20.00, quantity=5)]
        order = await self._create(test_db, customer, items=items)
        service = OrderLifecycleService(test_db)

        await service.transition_status(order.id, OrderStatus.COMPLETED)

        product = get_product(test_db, "p3")
        assert product.inventory_quantity == 0
        assert product.inventory_status == "out_of_stock"

    @pytest.mark.asyncio
    async def test_unmanaged_and_missing_products_skipped(self, test_db, sample_products, customer):
        items = [
            CartItem(id="p2", name="Gift Card", price=50.00, quantity=1),
            CartItem(id="gone", name="Old Product", price=10.00, quantity=1),
            CartItem(id="p1", name="Tee", price=35.00, quantity=1),
        ]
        order = await self._create(test_db, customer, items=items)
        service = OrderLifecycleService(test_db)

        updated = await service.transition_status(order.id, OrderStatus.COMPLETED)

        assert updated.inventory_updated is True
        logs = test_db.query(InventoryLog).all()
        assert [log.product_id for log in logs] == ["p1"]
        assert get_product(test_db, "p2").inventory_quantity == 0

    @pytest.mark.asyncio
    async def test_same_product_on_two_lines(self, test_db, sample_products, customer):
        items = [
            CartItem(id="p1", name="Tee", price=35.00, quantity=2),
            CartItem(id="p1", name="Tee", price=35.00, quantity=3),
        ]
        order = await self._create(test_db, customer, items=items)

        await OrderLifecycleService(test_db).transition_status(order.id, OrderStatus.COMPLETED)

        assert get_product(test_db, "p1").inventory_quantity == 5
        assert test_db.query(InventoryLog).count() == 2

    @pytest.mark.asyncio
    async def test_cancel_after_stock_taken_restocks_uncapped(self, test_db, sample_products, customer):
        items = [CartItem(id="p3", name="Cap", price=20.00, quantity=3)]
        order = await self._create(test_db, customer, items=items)

        # An order that reached processing with stock already taken
        row = test_db.query(Order).filter(Order.id == order.id).first()
        row.status = "processing"
        row.inventory_updated = True
        test_db.commit()

        service = OrderLifecycleService(test_db)
        cancelled = await service.transition_status(order.id, OrderStatus.CANCELLED)

        assert cancelled.status == "cancelled"
        product = get_product(test_db, "p3")
        assert product.inventory_quantity == 5
        log = test_db.query(InventoryLog).one()
        assert (log.previous_quantity, log.new_quantity, log.reason) == (2, 5, "return")

    @pytest.mark.asyncio
    async def test_cancel_pending_does_not_restock(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)

        await OrderLifecycleService(test_db).transition_status(order.id, OrderStatus.CANCELLED)

        assert get_product(test_db, "p1").inventory_quantity == 10
        assert test_db.query(InventoryLog).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_order(self, test_db, sample_products):
        with pytest.raises(OrderNotFoundError):
            await OrderLifecycleService(test_db).transition_status("ORD-NOPE", OrderStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_transition(self, test_db, sample_products, customer):
        order = await self._create(test_db, customer)
        service = OrderLifecycleService(test_db, notifier=ExplodingNotifier())

        updated = await service.transition_status(order.id, OrderStatus.COMPLETED)

        assert updated.status == "completed"

    @pytest.mark.asyncio
    async def test_revalidates_order_paths(self, test_db, sample_products, customer, revalidated_paths):
        order = await self._create(test_db, customer)

        await OrderLifecycleService(test_db).transition_status(order.id, OrderStatus.PROCESSING)

        assert f"/admin/orders/{order.id}" in revalidated_paths


class TestDistributedLock:

    @pytest.mark.asyncio
    async def test_lock_released_after_transition(self, test_db, sample_products, customer):
        redis_client = FakeRedis()
        order = await OrderLifecycleService(test_db).create_order(make_order_data(customer))
        service = OrderLifecycleService(test_db, redis_client=redis_client)

        await service.transition_status(order.id, OrderStatus.PROCESSING)

        assert redis_client.keys == {}

    @pytest.mark.asyncio
    async def test_held_lock_rejects_transition(self, test_db, sample_products, customer):
        redis_client = FakeRedis()
        order = await OrderLifecycleService(test_db).create_order(make_order_data(customer))
        redis_client.set(f"order_lock:{order.id}", "locked", nx=True, ex=30)
        service = OrderLifecycleService(test_db, redis_client=redis_client)

        with pytest.raises(ConcurrencyConflictError):
            await service.transition_status(order.id, OrderStatus.COMPLETED)

        assert get_product(test_db, "p1").inventory_quantity == 10
