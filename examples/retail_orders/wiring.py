# examples/retail_orders/wiring.py
"""Two services in one process: customers and orders, each backed by a CSV file.

    graphstitch get --wiring examples.retail_orders.wiring:build Customer 1
    graphstitch get --wiring examples.retail_orders.wiring:build Order 102
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field

from graphstitch import (
    BaseEntity,
    FrameRepository,
    GraphStitchSettings,
    LocalServiceClient,
    RelationalResolver,
    RepositoryHandler,
)

DATA_DIR = Path(__file__).resolve().parent / "data"


class Customer(BaseEntity):
    id: int
    name: str
    email: str = ""
    segment: str = ""
    orders: List["Order"] = Field(default_factory=list)


class Order(BaseEntity):
    id: int
    customer_id: int
    order_date: str = ""
    status: str = ""
    total_amount: float = 0.0
    customer: Optional[Customer] = None


Customer.model_rebuild()


def _service(store: FrameRepository, name: str) -> tuple[RepositoryHandler, LocalServiceClient]:
    handler = RepositoryHandler()
    handler.register(store)
    return handler, LocalServiceClient(handler, name=name)


def build(settings: GraphStitchSettings, data_dir: Path = DATA_DIR) -> RelationalResolver:
    customers, customers_client = _service(FrameRepository.from_csv(Customer, data_dir / "customers.csv"), "customers")
    orders, orders_client = _service(FrameRepository.from_csv(Order, data_dir / "orders.csv"), "orders")

    # this process answers local lookups for both types
    local = RepositoryHandler()
    local.register(customers.get_repository(Customer))
    local.register(orders.get_repository(Order))

    # rows come out of the CSV files with empty collections
    resolver_settings = settings.resolver.model_copy(update={"resolve_empty_collections": True})
    resolver = RelationalResolver(local, settings=resolver_settings)
    resolver.register_service_for_type(Customer, customers_client)
    resolver.register_service_for_type(Order, orders_client)
    resolver.register_constraint(Customer, "customer", "id", local_key_name="customer_id")
    resolver.register_constraint(Order, "orders", "customer_id")
    resolver.freeze()
    return resolver
