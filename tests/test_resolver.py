from __future__ import annotations

import asyncio
import logging

import pytest

from graphstitch import (
    InMemoryRepository,
    RegistryFrozenError,
    RelationalResolver,
    RepositoryHandler,
    ResolverSettings,
)
from graphstitch.logging_config import NO_REQUEST, RequestContextFilter, request_scope
from tests.helpers.retail import Customer, Invoice, Order, RecordingClient, make_handler


def _order_resolver(customer_client: RecordingClient, order: Order | None = None, **settings) -> RelationalResolver:
    order = order or Order(id=1, customer_id=42)
    local = make_handler(InMemoryRepository(Order, [order]))
    resolver = RelationalResolver(local, settings=ResolverSettings(**settings))
    resolver.register_service_for_type(Customer, customer_client)
    resolver.register_constraint(Customer, "customer", "id", local_key_name="customer_id")
    return resolver


@pytest.mark.asyncio
async def test_has_one_relation_is_set_to_first_result():
    client = RecordingClient({"id eq 42": [Customer(id=42, name="Bob"), Customer(id=43, name="Eve")]})
    resolver = _order_resolver(client)

    order = await resolver.get_by_id(Order, 1)

    assert isinstance(order, Order)
    assert order.customer == Customer(id=42, name="Bob")
    assert client.calls == [(Customer, "id eq 42", False)]


@pytest.mark.asyncio
async def test_has_one_relation_cleared_when_nothing_returned():
    client = RecordingClient({})
    stale = Order(id=1, customer_id=42, customer=Customer(id=99, name="stale"))
    resolver = _order_resolver(client, order=stale)

    order = await resolver.get_by_id(Order, 1)

    assert order.customer is None
    assert client.calls == [(Customer, "id eq 42", False)]


@pytest.mark.asyncio
async def test_has_one_without_local_key_reads_foreign_key_field_from_root():
    client = RecordingClient({"customer_id eq 42": [Customer(id=42)]})
    local = make_handler(InMemoryRepository(Order, [Order(id=1, customer_id=42)]))
    resolver = RelationalResolver(local)
    resolver.register_service_for_type(Customer, client)
    resolver.register_constraint(Customer, "customer", "customer_id")

    order = await resolver.get_by_id(Order, 1)

    assert client.calls == [(Customer, "customer_id eq 42", False)]
    assert order.customer.id == 42


@pytest.mark.asyncio
async def test_has_one_with_null_key_clears_field_without_fetch():
    client = RecordingClient({"id eq None": [Customer(id=1)]})
    resolver = _order_resolver(client, order=Order(id=1, customer_id=None, customer=Customer(id=5)))

    order = await resolver.get_by_id(Order, 1)

    assert order.customer is None
    assert client.calls == []


@pytest.mark.asyncio
async def test_has_many_relation_appends_fetched_items():
    fetched = [Order(id=10, customer_id=7), Order(id=11, customer_id=7)]
    client = RecordingClient({"customer_id eq 7": fetched})
    local = make_handler(InMemoryRepository(Customer, [Customer(id=7, name="Alice")]))
    resolver = RelationalResolver(local, settings=ResolverSettings(resolve_empty_collections=True))
    resolver.register_service_for_type(Order, client)
    resolver.register_constraint(Order, "orders", "customer_id")

    customer = await resolver.get_by_id(Customer, 7)

    assert [o.id for o in customer.orders] == [10, 11]
    assert client.calls == [(Order, "customer_id eq 7", False)]


@pytest.mark.asyncio
async def test_has_many_relation_keeps_existing_items():
    client = RecordingClient({"customer_id eq 7": [Order(id=10, customer_id=7), Order(id=11, customer_id=7)]})
    existing = Customer(id=7, orders=[Order(id=1, customer_id=7)])
    local = make_handler(InMemoryRepository(Customer, [existing]))
    resolver = RelationalResolver(local)
    resolver.register_service_for_type(Order, client)
    resolver.register_constraint(Order, "orders", "customer_id")

    customer = await resolver.get_by_id(Customer, 7)

    assert [o.id for o in customer.orders] == [1, 10, 11]


@pytest.mark.asyncio
async def test_empty_collection_is_left_untouched_by_default():
    client = RecordingClient({"customer_id eq 7": [Order(id=10, customer_id=7)]})
    local = make_handler(InMemoryRepository(Customer, [Customer(id=7, name="Alice")]))
    resolver = RelationalResolver(local)
    resolver.register_service_for_type(Order, client)
    resolver.register_constraint(Order, "orders", "customer_id")

    customer = await resolver.get_by_id(Customer, 7)

    assert customer.orders == []
    assert client.calls == []


@pytest.mark.asyncio
async def test_include_all_false_never_fetches():
    client = RecordingClient({"id eq 42": [Customer(id=42)]})
    resolver = _order_resolver(client)

    order = await resolver.get_by_id(Order, 1, include_all=False)

    assert order == Order(id=1, customer_id=42)
    assert client.calls == []


@pytest.mark.asyncio
async def test_missing_repository_returns_none():
    resolver = RelationalResolver(RepositoryHandler())
    assert await resolver.get_by_id(Order, 1) is None


@pytest.mark.asyncio
async def test_unknown_id_returns_none_without_fetch():
    client = RecordingClient({"id eq 42": [Customer(id=42)]})
    resolver = _order_resolver(client)

    assert await resolver.get_by_id(Order, 404) is None
    assert client.calls == []


@pytest.mark.asyncio
async def test_field_without_client_is_left_untouched():
    invoice = Invoice(id=3, order_id=1)
    order = Order(id=1, customer_id=42, invoice=invoice)
    local = make_handler(InMemoryRepository(Order, [order]))
    resolver = RelationalResolver(local)
    # constraint alone is not enough
    resolver.register_constraint(Invoice, "invoice", "order_id")

    loaded = await resolver.get_by_id(Order, 1)

    assert loaded.invoice == invoice
    assert loaded.customer is None


@pytest.mark.asyncio
async def test_field_without_constraint_is_left_untouched():
    client = RecordingClient({"id eq 42": [Customer(id=42)]})
    local = make_handler(InMemoryRepository(Order, [Order(id=1, customer_id=42, customer=Customer(id=1))]))
    resolver = RelationalResolver(local)
    resolver.register_service_for_type(Customer, client)

    loaded = await resolver.get_by_id(Order, 1)

    assert loaded.customer == Customer(id=1)
    assert client.calls == []


@pytest.mark.asyncio
async def test_constraint_is_matched_by_field_name():
    client = RecordingClient({"id eq 42": [Customer(id=42)]})
    resolver = _order_resolver(client)
    resolver.register_constraint(Order, "orders_elsewhere", "customer_id")

    order = await resolver.get_by_id(Order, 1)

    assert order.customer.id == 42


@pytest.mark.asyncio
async def test_remote_fault_propagates():
    client = RecordingClient(error=ConnectionError("customer service down"))
    resolver = _order_resolver(client)

    with pytest.raises(ConnectionError, match="customer service down"):
        await resolver.get_by_id(Order, 1)


@pytest.mark.asyncio
async def test_remote_fault_leaves_entity_unmodified():
    orders_client = RecordingClient({"customer_id eq 7": [Order(id=10, customer_id=7)]})
    invoices_client = RecordingClient(error=TimeoutError("invoices"))
    customer = Customer(id=7)
    local = make_handler(InMemoryRepository(Customer, [customer]))
    resolver = RelationalResolver(local, settings=ResolverSettings(resolve_empty_collections=True))
    resolver.register_service_for_type(Order, orders_client)
    resolver.register_service_for_type(Invoice, invoices_client)
    resolver.register_constraint(Order, "orders", "customer_id")
    resolver.register_constraint(Invoice, "invoices", "customer_id")

    with pytest.raises(TimeoutError):
        await resolver.resolve_relations(customer)

    assert orders_client.calls and invoices_client.calls
    assert customer.orders == []
    assert customer.invoices == []


@pytest.mark.asyncio
async def test_fetched_entities_are_not_resolved_further():
    related = Customer(id=42, name="Bob")
    customer_client = RecordingClient({"id eq 42": [related]})
    orders_client = RecordingClient({"customer_id eq 42": [Order(id=2, customer_id=42)]})
    resolver = _order_resolver(customer_client)
    resolver.register_service_for_type(Order, orders_client)
    resolver.register_constraint(Order, "orders", "customer_id")

    order = await resolver.get_by_id(Order, 1)

    assert order.customer.orders == []
    assert orders_client.calls == []


@pytest.mark.asyncio
async def test_remote_include_all_setting_is_forwarded():
    client = RecordingClient({"id eq 42": [Customer(id=42)]})
    resolver = _order_resolver(client, remote_include_all=True)

    await resolver.get_by_id(Order, 1)

    assert client.calls == [(Customer, "id eq 42", True)]


@pytest.mark.asyncio
async def test_parallel_fetch_matches_sequential_result():
    results = {
        "customer_id eq 7": [Order(id=10, customer_id=7), Order(id=11, customer_id=7)],
    }
    invoices = {"customer_id eq 7": [Invoice(id=5, customer_id=7)]}

    async def load(parallel: bool) -> Customer:
        local = make_handler(InMemoryRepository(Customer, [Customer(id=7, orders=[Order(id=1)])]))
        resolver = RelationalResolver(local, settings=ResolverSettings(parallel_fetch=parallel, resolve_empty_collections=True))
        resolver.register_service_for_type(Order, RecordingClient(results, delay=0.02))
        resolver.register_service_for_type(Invoice, RecordingClient(invoices))
        resolver.register_constraint(Order, "orders", "customer_id")
        resolver.register_constraint(Invoice, "invoices", "customer_id")
        return await resolver.get_by_id(Customer, 7)

    sequential = await load(False)
    parallel = await load(True)

    assert parallel == sequential
    assert [o.id for o in parallel.orders] == [1, 10, 11]
    assert [i.id for i in parallel.invoices] == [5]


@pytest.mark.asyncio
async def test_parallel_fetch_fault_propagates():
    local = make_handler(InMemoryRepository(Customer, [Customer(id=7)]))
    resolver = RelationalResolver(local, settings=ResolverSettings(parallel_fetch=True, resolve_empty_collections=True))
    resolver.register_service_for_type(Order, RecordingClient({}, delay=0.05))
    resolver.register_service_for_type(Invoice, RecordingClient(error=RuntimeError("boom")))
    resolver.register_constraint(Order, "orders", "customer_id")
    resolver.register_constraint(Invoice, "invoices", "customer_id")

    with pytest.raises(RuntimeError, match="boom"):
        await resolver.get_by_id(Customer, 7)


@pytest.mark.asyncio
async def test_sync_collaborators_are_supported():
    class SyncRepository:
        def has_repository(self, entity_type):
            return entity_type is Order

        def get_by_id(self, entity_type, entity_id, include_all=True):
            return Order(id=entity_id, customer_id=42)

    calls = []

    def fetch(filter: str, include_all: bool):
        calls.append(filter)
        return [Customer(id=42)]

    resolver = RelationalResolver(SyncRepository())
    resolver.register_service_for_type(Customer, object(), fetch=fetch)
    resolver.register_constraint(Customer, "customer", "id", local_key_name="customer_id")

    order = await resolver.get_by_id(Order, 1)

    assert calls == ["id eq 42"]
    assert order.customer.id == 42


@pytest.mark.asyncio
async def test_freeze_on_first_request():
    resolver = _order_resolver(RecordingClient({}), freeze_on_first_request=True)

    await resolver.get_by_id(Order, 1)

    assert resolver.frozen


def test_describe_relations_lists_resolvable_fields():
    resolver = _order_resolver(RecordingClient({}))
    resolver.register_service_for_type(Order, RecordingClient({}))
    resolver.register_constraint(Order, "orders", "customer_id")

    order_relations = resolver.describe_relations(Order)
    customer_relations = resolver.describe_relations(Customer)

    assert [(r.field_name, r.foreign_key, r.key_field, r.cardinality) for r in order_relations] == [
        ("customer", "id", "customer_id", "one")
    ]
    assert [(r.field_name, r.foreign_key, r.key_field, r.cardinality) for r in customer_relations] == [
        ("orders", "customer_id", "id", "many")
    ]


@pytest.mark.asyncio
async def test_parallel_fetch_fault_settles_sibling_fetches():
    slow = RecordingClient(error=RuntimeError("orders"), delay=0.05)
    local = make_handler(InMemoryRepository(Customer, [Customer(id=7)]))
    resolver = RelationalResolver(local, settings=ResolverSettings(parallel_fetch=True, resolve_empty_collections=True))
    resolver.register_service_for_type(Order, slow)
    resolver.register_service_for_type(Invoice, RecordingClient(error=RuntimeError("invoices")))
    resolver.register_constraint(Order, "orders", "customer_id")
    resolver.register_constraint(Invoice, "invoices", "customer_id")

    with pytest.raises(RuntimeError, match="invoices"):
        await resolver.get_by_id(Customer, 7)

    assert slow.calls
    assert asyncio.all_tasks() == {asyncio.current_task()}


def test_rejected_registration_leaves_schema_cache_alone():
    resolver = _order_resolver(RecordingClient({}))
    resolver.freeze()

    with pytest.raises(RegistryFrozenError):
        resolver.register_service_for_type(Invoice, RecordingClient({}))
    with pytest.raises(RegistryFrozenError):
        resolver.register_constraint(Invoice, "invoice", "order_id")

    assert resolver.schemas.get(Invoice) is None
    assert Invoice not in resolver.services


@pytest.mark.asyncio
async def test_each_request_logs_under_its_own_request_id(caplog):
    caplog.handler.addFilter(RequestContextFilter())
    caplog.set_level(logging.DEBUG, logger="graphstitch")
    resolver = _order_resolver(RecordingClient({"id eq 42": [Customer(id=42)]}))

    await resolver.get_by_id(Order, 1)
    first = {r.request_id for r in caplog.records if r.name == "graphstitch.resolver"}
    caplog.clear()
    await resolver.get_by_id(Order, 1)
    second = {r.request_id for r in caplog.records if r.name == "graphstitch.resolver"}

    assert len(first) == 1 and len(second) == 1
    assert first != second
    assert NO_REQUEST not in first | second


@pytest.mark.asyncio
async def test_enclosing_request_scope_is_reused(caplog):
    caplog.handler.addFilter(RequestContextFilter())
    caplog.set_level(logging.DEBUG, logger="graphstitch")
    resolver = _order_resolver(RecordingClient({"id eq 42": [Customer(id=42)]}), parallel_fetch=True)

    with request_scope("batch-1"):
        await resolver.get_by_id(Order, 1)
        await resolver.resolve_relations(Order(id=2, customer_id=42))

    assert {r.request_id for r in caplog.records if r.name.startswith("graphstitch")} == {"batch-1"}
