from __future__ import annotations

import logging

from pydantic import ValidationError

from sarathi.core.errors import OrderTransitionError
from sarathi.core.keys import orders_key
from sarathi.core.storage import KeyValueStore
from sarathi.models.pharmacy import ORDER_FLOW, OrderStatus, PharmacyOrder
from sarathi.utils.parsing import make_record_id

logger = logging.getLogger(__name__)


class OrderBook:
    """약국 주문 목록(최신 주문이 앞)"""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def list_orders(self, status: OrderStatus | None = None) -> list[PharmacyOrder]:
        raw = self._store.read_json(orders_key(), [])
        if not isinstance(raw, list):
            logger.warning("주문 목록 형식 오류, 빈 목록으로 처리")
            return []
        orders: list[PharmacyOrder] = []
        for item in raw:
            try:
                orders.append(PharmacyOrder.model_validate(item))
            except ValidationError as exc:
                logger.warning("손상된 주문 항목 건너뜀: %s", exc.error_count())
        if status is not None:
            orders = [order for order in orders if order.status == status]
        return orders

    def _save(self, orders: list[PharmacyOrder]) -> bool:
        return self._store.write_json(orders_key(), [o.to_json_dict() for o in orders])

    def create_order(
        self,
        patient_name: str,
        medication: str,
        instruction: str = "",
        prescribed_by: str | None = None,
        order_id: str | None = None,
    ) -> PharmacyOrder:
        """처방으로부터 RECEIVED 상태 주문 생성

        같은 ``order_id`` 의 주문이 이미 있으면 새로 만들지 않고 기존 주문을
        반환한다.

        Args:
            patient_name: 환자 이름
            medication: 약품
            instruction: 복용 안내
            prescribed_by: 처방 의사
            order_id: 주문 ID(없으면 생성)

        Returns:
            생성된 주문 또는 기존 주문
        """
        order = PharmacyOrder(
            id=order_id or make_record_id("ORD"),
            patient_name=patient_name,
            medication=medication,
            instruction=instruction,
            prescribed_by=prescribed_by,
        )
        with self._store.lock_for(orders_key().key):
            orders = self.list_orders()
            existing = next((o for o in orders if o.id == order.id), None)
            if existing is not None:
                logger.info("이미 생성된 주문 %s, 중복 생성 생략", existing.id)
                return existing
            self._save([order, *orders])
        logger.info("약국 주문 생성 %s (%s)", order.id, medication)
        return order

    def get(self, order_id: str) -> PharmacyOrder | None:
        return next((o for o in self.list_orders() if o.id == order_id), None)

    def set_status(self, order_id: str, status: OrderStatus) -> PharmacyOrder:
        """주문 상태를 한 단계 진행

        Args:
            order_id: 주문 ID
            status: 새 상태(현재 상태의 바로 다음이어야 함)

        Returns:
            갱신된 주문

        Raises:
            OrderTransitionError: 주문이 없거나 허용되지 않는 전이
        """
        with self._store.lock_for(orders_key().key):
            orders = self.list_orders()
            for index, order in enumerate(orders):
                if order.id != order_id:
                    continue
                position = ORDER_FLOW.index(order.status)
                if position + 1 >= len(ORDER_FLOW) or ORDER_FLOW[position + 1] != status:
                    raise OrderTransitionError(
                        order_id, f"{order.status.value} -> {status.value} 전이 불가"
                    )
                orders[index] = order.model_copy(update={"status": status})
                self._save(orders)
                logger.info("주문 상태 %s -> %s", order_id, status.value)
                return orders[index]
        raise OrderTransitionError(order_id, "주문 없음")

    def advance(self, order_id: str) -> PharmacyOrder:
        """다음 상태로 진행"""
        order = self.get(order_id)
        if order is None:
            raise OrderTransitionError(order_id, "주문 없음")
        position = ORDER_FLOW.index(order.status)
        if position + 1 >= len(ORDER_FLOW):
            raise OrderTransitionError(order_id, "이미 수령 완료")
        return self.set_status(order_id, ORDER_FLOW[position + 1])
