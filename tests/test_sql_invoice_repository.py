"""SQL store semantics against SQLite (aiosqlite)."""
from functools import partial

import pytest

from domain.common.exceptions import (
    InvalidTransitionException,
    InvoiceAlreadyExistsException,
)
from domain.invoice.entity import InvoiceStatus as S
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
async def sql_uow_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/invoices.db")
    await create_tables(engine)
    try:
        yield partial(SQLAlchemyUnitOfWork, build_session_factory(engine))
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_create_and_read_back(sql_uow_factory, make_invoice):
    inv = make_invoice(invoice_id="inv_sql")
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.create(inv)

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.invoice_repository.find_by_id("inv_sql")
    assert stored.invoice_id == "inv_sql"
    assert stored.amount == "50.00"
    assert stored.status == S.CREATED
    assert stored.expires_at == inv.expires_at


@pytest.mark.asyncio
async def test_duplicate_insert_raises(sql_uow_factory, make_invoice):
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.create(make_invoice(invoice_id="inv_dup"))
    with pytest.raises(InvoiceAlreadyExistsException):
        async with sql_uow_factory() as uow:
            await uow.invoice_repository.create(make_invoice(invoice_id="inv_dup"))


@pytest.mark.asyncio
async def test_update_status_commits(sql_uow_factory, make_invoice):
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.create(make_invoice(invoice_id="inv_1"))
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.update_status(
            "inv_1", S.PENDING, processor_invoice_id="fp_1", payment_address="0xdeposit"
        )
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.update_status("inv_1", S.DETECTED, tx_hash="0xearly", event_id="evt_1")
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.update_status("inv_1", S.CONFIRMED, tx_hash="0xtx", event_id="evt_2")

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.invoice_repository.find_by_processor_id("fp_1")
    assert stored.status == S.CONFIRMED
    assert stored.tx_hash == "0xtx"
    assert stored.last_applied_event_id == "evt_2"
    assert stored.payment_address == "0xdeposit"


@pytest.mark.asyncio
async def test_conditional_write_misses_on_stale_status(sql_uow_factory, make_invoice):
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.create(make_invoice(invoice_id="inv_1", status=S.PENDING))
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.update_status("inv_1", S.DETECTED)

    async with sql_uow_factory() as uow:
        applied = await uow.invoice_repository._compare_and_set("inv_1", S.PENDING, {"status": S.EXPIRED})
    assert applied is False

    async with sql_uow_factory(readonly=True) as uow:
        assert (await uow.invoice_repository.find_by_id("inv_1")).status == S.DETECTED


@pytest.mark.asyncio
async def test_failed_update_rolls_back(sql_uow_factory, make_invoice):
    async with sql_uow_factory() as uow:
        await uow.invoice_repository.create(make_invoice(invoice_id="inv_1", status=S.PENDING))

    with pytest.raises(InvalidTransitionException):
        async with sql_uow_factory() as uow:
            await uow.invoice_repository.update_status("inv_1", S.DETECTED, event_id="evt_1")
            await uow.invoice_repository.update_status("inv_1", S.PENDING)

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.invoice_repository.find_by_id("inv_1")
    assert stored.status == S.PENDING
    assert stored.last_applied_event_id is None


@pytest.mark.asyncio
async def test_find_non_terminal_sql(sql_uow_factory, make_invoice):
    async with sql_uow_factory() as uow:
        for i, status in enumerate(S):
            await uow.invoice_repository.create(make_invoice(invoice_id=f"inv_{i}", status=status))
    async with sql_uow_factory(readonly=True) as uow:
        found = await uow.invoice_repository.find_non_terminal()
    assert {inv.status for inv in found} == {S.CREATED, S.PENDING, S.DETECTED, S.CONFIRMED}
