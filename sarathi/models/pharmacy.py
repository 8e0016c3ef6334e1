from __future__ import annotations

from enum import Enum

from pydantic import Field

from sarathi.models.base import CamelModel
from sarathi.utils.timeutil import now_ms


class OrderStatus(str, Enum):
    RECEIVED = "RECEIVED"
    ACCEPTED = "ACCEPTED"
    READY = "READY"
    PICKED_UP = "PICKED_UP"


ORDER_FLOW: tuple[OrderStatus, ...] = (
    OrderStatus.RECEIVED,
    OrderStatus.ACCEPTED,
    OrderStatus.READY,
    OrderStatus.PICKED_UP,
)


class PharmacyOrder(CamelModel):
    """의사 처방으로 생성되는 약국 주문"""

    id: str
    patient_name: str
    medication: str
    instruction: str = ""
    timestamp: int = Field(default_factory=now_ms)
    status: OrderStatus = OrderStatus.RECEIVED
    prescribed_by: str | None = None
