"""
MRP planning and release tests.

net_requirement = max(gross - (on_hand - reserved_by_other_open_orders), 0)
and an order is released only when no material is short.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InvalidOrderStateError, MaterialShortageError
from inventory_modules.production import MrpAction, ProductionOrderStatus


def _line(report, material):
    return next(line for line in report.lines if line.material_id == material)


class TestPlanOrder:

    def test_all_materials_available(self, stocked_tshirt, create_order, production_service):
        order = create_order(stocked_tshirt, qty="10")

        report = production_service.planner.plan_order(order.id)

        assert not report.has_shortage
        fabric = _line(report, stocked_tshirt.fabric)
        assert fabric.gross_requirement == Decimal("20")
        assert fabric.on_hand == Decimal("100")
        assert fabric.reserved_other == Decimal("0")
        assert fabric.available == Decimal("100")
        assert fabric.net_requirement == Decimal("0")
        assert fabric.action == MrpAction.OK

    def test_partial_and_purchase(
        self, tshirt, create_order, production_service, stock_service, current_period,
        tenant_id, test_actor_id,
    ):
        # 15 fabric on hand, no thread or labels at all
        stock_service.receive_material(
            tenant_id, tshirt.fabric, tshirt.material_location, Decimal("15"),
            Decimal("3"), test_actor_id,
        )
        order = create_order(tshirt, qty="10")

        report = production_service.planner.plan_order(order.id)

        fabric = _line(report, tshirt.fabric)
        assert fabric.action == MrpAction.PARTIAL
        assert fabric.net_requirement == Decimal("5")
        thread = _line(report, tshirt.thread)
        assert thread.action == MrpAction.PURCHASE
        assert thread.net_requirement == Decimal("100")
        assert {line.material_id for line in report.shortages} == {
            tshirt.fabric, tshirt.thread, tshirt.label,
        }

    def test_other_open_orders_reduce_availability(
        self, tshirt, create_order, production_service, stock_service, current_period,
        tenant_id, test_actor_id,
    ):
        stock_service.receive_material(
            tenant_id, tshirt.fabric, tshirt.material_location, Decimal("25"),
            Decimal("3"), test_actor_id,
        )
        create_order(tshirt, qty="5")
        order = create_order(tshirt, qty="10")

        fabric = _line(production_service.planner.plan_order(order.id), tshirt.fabric)

        assert fabric.reserved_other == Decimal("10")
        assert fabric.available == Decimal("15")
        assert fabric.net_requirement == Decimal("5")
        assert fabric.action == MrpAction.PARTIAL

    def test_cancelled_orders_reserve_nothing(
        self, stocked_tshirt, create_order, production_service, test_actor_id,
    ):
        other = create_order(stocked_tshirt, qty="40")
        production_service.cancel_production_order(other.id, test_actor_id)
        order = create_order(stocked_tshirt, qty="10")

        fabric = _line(production_service.planner.plan_order(order.id), stocked_tshirt.fabric)

        assert fabric.reserved_other == Decimal("0")

    def test_planning_logged(self, stocked_tshirt, create_order, production_service, captured_logs):
        order = create_order(stocked_tshirt)
        production_service.planner.plan_order(order.id)
        planned = [r for r in captured_logs() if r["message"] == "mrp_order_planned"]
        assert planned[-1]["material_count"] == 3
        assert planned[-1]["shortage_count"] == 0


class TestRelease:

    def test_release(self, stocked_tshirt, create_order, production_service, test_actor_id):
        order = create_order(stocked_tshirt)
        released = production_service.release_production_order(order.id, test_actor_id)
        assert released.status == ProductionOrderStatus.RELEASED
        assert released.released_by_id == test_actor_id

    def test_release_blocked_by_shortage(
        self, tshirt, create_order, production_service, current_period, test_actor_id,
        captured_logs,
    ):
        order = create_order(tshirt)

        with pytest.raises(MaterialShortageError) as exc_info:
            production_service.release_production_order(order.id, test_actor_id)

        assert exc_info.value.order_id == str(order.id)
        assert len(exc_info.value.shortages) == 3
        assert exc_info.value.shortages[0]["action"] == "PURCHASE"
        assert production_service.get_order(order.id).status == ProductionOrderStatus.PLANNED
        blocked = [r for r in captured_logs() if r["message"] == "production_release_blocked"]
        assert blocked[0]["level"] == "WARNING"

    def test_release_twice_rejected(self, released_order, production_service, test_actor_id):
        with pytest.raises(InvalidOrderStateError):
            production_service.release_production_order(released_order.id, test_actor_id)

    def test_facade_plan_and_release(self, core, stocked_tshirt, create_order, test_actor_id):
        order = create_order(stocked_tshirt)
        assert not core.plan_order(order.id).has_shortage
        released = core.release_production_order(order.id, test_actor_id)
        assert released.status == ProductionOrderStatus.RELEASED


class TestBomDatePinning:
    """Sub-assemblies resolve on the order's BOM date, not on the release date."""

    @pytest.fixture
    def jacket(self, bom_service, stock_service, current_period, tenant_id, test_actor_id):
        """Jacket v1 = 1 lining at SEW; lining v1 = 2 fabric.  20 fabric on hand."""
        jacket, lining, fabric, store = uuid4(), uuid4(), uuid4(), uuid4()
        jacket_bom = bom_service.create_bom(
            tenant_id, jacket, 1, date(2024, 1, 1), test_actor_id,
        )
        bom_service.add_line(
            jacket_bom.id, Decimal("1"), "SEW", test_actor_id, component_product_id=lining,
        )
        lining_bom = bom_service.create_bom(
            tenant_id, lining, 1, date(2024, 1, 1), test_actor_id,
        )
        bom_service.add_line(lining_bom.id, Decimal("2"), "CUT", test_actor_id, material_id=fabric)
        stock_service.receive_material(
            tenant_id, fabric, store, Decimal("20"), Decimal("3"), test_actor_id,
        )
        return {"product": jacket, "lining": lining, "fabric": fabric, "store": store}

    def test_new_sub_assembly_version_after_create(
        self, jacket, bom_service, production_service, deterministic_clock, tenant_id,
        test_actor_id,
    ):
        order = production_service.create_production_order(
            tenant_id, "JK-1", jacket["product"], Decimal("10"),
            jacket["store"], uuid4(), test_actor_id,
        )
        assert order.bom_as_of == date(2024, 1, 1)

        lining_v2 = bom_service.create_bom(
            tenant_id, jacket["lining"], 2, date(2024, 1, 10), test_actor_id,
        )
        bom_service.add_line(
            lining_v2.id, Decimal("3"), "CUT", test_actor_id, material_id=jacket["fabric"],
        )
        deterministic_clock.set_time(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))

        report = production_service.planner.plan_order(order.id)

        reserved = sum(
            r.qty_required for r in order.reservations if r.material_id == jacket["fabric"]
        )
        assert reserved == Decimal("20")
        assert _line(report, jacket["fabric"]).gross_requirement == reserved
        assert not report.has_shortage

        released = production_service.release_production_order(order.id, test_actor_id)
        assert released.status == ProductionOrderStatus.RELEASED

    def test_explicit_bom_date(
        self, jacket, bom_service, production_service, tenant_id, test_actor_id,
    ):
        lining_v2 = bom_service.create_bom(
            tenant_id, jacket["lining"], 2, date(2024, 1, 10), test_actor_id,
        )
        bom_service.add_line(
            lining_v2.id, Decimal("3"), "CUT", test_actor_id, material_id=jacket["fabric"],
        )

        order = production_service.create_production_order(
            tenant_id, "JK-2", jacket["product"], Decimal("5"),
            jacket["store"], uuid4(), test_actor_id, bom_as_of=date(2024, 1, 20),
        )

        assert order.bom_as_of == date(2024, 1, 20)
        assert [r.qty_required for r in order.reservations] == [Decimal("15")]
        fabric = _line(production_service.planner.plan_order(order.id), jacket["fabric"])
        assert fabric.gross_requirement == Decimal("15")
