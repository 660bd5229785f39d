from __future__ import annotations

import threading

import pytest

from reporting.backfill import HistoricalBackfill
from reporting.generator import ReportGenerationError
from reporting.models import ReportKind, ReportOrigin
from reporting.scheduler import ReportScheduler
from tests.sample_orders import (
    FlakyStore,
    at,
    corrupt_order_row,
    included_order_ids,
    make_generator,
    make_order,
    make_store,
)

NOW = at(2024, 1, 12, 10, 0)


def test_manual_report_with_nothing_pending_persists_nothing(tmp_path) -> None:
    store = make_store(tmp_path)
    generator = make_generator(store, NOW)

    assert generator.generate_manual() is None
    assert store.list_generated_reports() == []


def test_manual_report_covers_pending_orders_up_to_now(tmp_path) -> None:
    store = make_store(
        tmp_path,
        [
            make_order(1, at(2023, 12, 1, 9, 0)),
            make_order(2, at(2024, 1, 11, 16, 0), [(201, 2)]),
            make_order(3, at(2024, 1, 20, 9, 0)),
        ],
    )
    generator = make_generator(store, NOW)

    report = generator.generate_manual()

    assert report is not None
    assert report.kind is ReportKind.MANUAL
    assert report.origin is ReportOrigin.MANUAL
    assert report.report_id.startswith("manual_")
    assert report.order_ids == (1, 2)
    assert report.period_start == at(2023, 12, 1, 9, 0)
    assert report.period_end == NOW
    assert store.is_order_reported(1) and store.is_order_reported(2)
    # Order 3 is timestamped in the future and stays pending.
    assert not store.is_order_reported(3)
    assert [stored.report_id for stored in store.list_generated_reports()] == [report.report_id]


def test_report_views_are_stored_with_the_report(tmp_path) -> None:
    store = make_store(tmp_path, [make_order(1, at(2024, 1, 11, 9, 0), [(101, 4)])])
    report = make_generator(store, NOW).generate_manual()

    stored = store.list_generated_reports()[0]
    assert stored.views == report.views
    assert stored.views["general"]["resumen"]["total_pedidos"] == 1
    assert stored.views["productos_por_proveedor"]["proveedores"][0]["productos"][0]["cantidad_total"] == 4


def test_persist_failure_raises_and_leaves_orders_pending(tmp_path) -> None:
    inner = make_store(tmp_path, [make_order(1, at(2024, 1, 11, 9, 0))])
    store = FlakyStore(inner, fail_on_calls={1})
    generator = make_generator(store, NOW)

    with pytest.raises(ReportGenerationError):
        generator.generate_manual()
    assert not inner.is_order_reported(1)

    scheduler = ReportScheduler(make_generator(FlakyStore(inner, fail_on_calls={1}), NOW))
    assert scheduler.generate_manual_report() is None
    with pytest.raises(ReportGenerationError):
        ReportScheduler(make_generator(FlakyStore(inner, fail_on_calls={1}), NOW)).generate_manual_report(
            raise_on_error=True
        )


def test_concurrent_manual_triggers_never_share_orders(tmp_path) -> None:
    store = make_store(tmp_path, [make_order(i, at(2024, 1, 4, i, 0)) for i in range(1, 6)])
    generator = make_generator(store, NOW)
    results = []
    barrier = threading.Barrier(4)

    def trigger() -> None:
        barrier.wait()
        results.append(generator.generate_manual())

    threads = [threading.Thread(target=trigger) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    produced = [report for report in results if report is not None]
    assert len(produced) == 1
    assert produced[0].order_ids == (1, 2, 3, 4, 5)
    assert len(store.list_generated_reports()) == 1


def test_each_order_appears_in_at_most_one_report(tmp_path) -> None:
    store = make_store(
        tmp_path,
        [
            make_order(1, at(2023, 12, 5, 9, 0)),
            make_order(2, at(2023, 12, 20, 9, 0)),
            make_order(3, at(2024, 1, 5, 9, 0)),
        ],
    )
    generator = make_generator(store, NOW)
    scheduler = ReportScheduler(generator)

    HistoricalBackfill(generator).run()
    store.add_orders([make_order(4, at(2024, 1, 11, 9, 0)), make_order(5, at(2024, 1, 12, 9, 0))])
    generator.generate_manual()
    store.add_orders([make_order(6, at(2024, 1, 15, 9, 0))])
    scheduler.tick(at(2024, 1, 17, 18, 1))
    scheduler.tick(at(2024, 1, 17, 18, 2))
    HistoricalBackfill(generator).run(now=at(2024, 1, 18, 9, 0))
    generator.generate_manual(now=at(2024, 1, 18, 9, 0))

    included = included_order_ids(store.list_generated_reports())
    assert sorted(included) == [1, 2, 3, 4, 5, 6]
    assert len(included) == len(set(included))


@pytest.mark.parametrize(
    "changes",
    [
        {"fecha_pedido": None},
        {"pedido_productos": [{"articulo_numero": 101, "cantidad": -2, "productos": None}]},
        {"fecha_pedido": "not a date"},
    ],
)
def test_malformed_order_row_is_a_generation_error(tmp_path, changes) -> None:
    store = make_store(tmp_path, [make_order(1, at(2024, 1, 11, 9, 0)), make_order(2, at(2024, 1, 11, 10, 0))])
    corrupt_order_row(store, 2, **changes)

    with pytest.raises(ReportGenerationError, match="pedidos row 2"):
        make_generator(store, NOW).generate_manual()

    scheduler = ReportScheduler(make_generator(store, NOW))
    assert scheduler.generate_manual_report() is None
    assert scheduler.tick(at(2024, 1, 17, 18, 1)) is None
    assert not store.is_order_reported(1)
