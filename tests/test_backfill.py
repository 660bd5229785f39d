from __future__ import annotations

from reporting.backfill import HistoricalBackfill
from reporting.models import ReportKind, ReportOrigin
from tests.sample_orders import (
    FlakyStore,
    at,
    corrupt_order_row,
    included_order_ids,
    make_generator,
    make_order,
    make_store,
)

NOW = at(2024, 2, 1, 12, 0)


def test_two_orders_in_one_week_produce_one_report(tmp_path) -> None:
    store = make_store(
        tmp_path,
        [make_order(1, at(2024, 1, 4, 10, 0)), make_order(2, at(2024, 1, 9, 15, 0))],
    )
    backfill = HistoricalBackfill(make_generator(store, NOW))

    result = backfill.run()

    assert result.success
    assert result.reports_generated == 1
    report = result.reports[0]
    assert report.order_ids == (1, 2)
    assert report.kind is ReportKind.AUTOMATIC
    assert report.origin is ReportOrigin.HISTORICAL
    assert report.period_start == at(2024, 1, 3, 18, 0)
    assert report.period_end == at(2024, 1, 10, 18, 0)

    again = backfill.run()
    assert again.success
    assert again.reports_generated == 0
    assert len(store.list_generated_reports()) == 1


def test_one_report_per_non_empty_week(tmp_path) -> None:
    store = make_store(
        tmp_path,
        [
            make_order(1, at(2023, 12, 28, 9, 0)),
            make_order(2, at(2024, 1, 3, 17, 59)),
            # Exactly on the anchor: belongs to the following week.
            make_order(3, at(2024, 1, 3, 18, 0)),
            make_order(4, at(2024, 1, 24, 8, 0)),
        ],
    )
    result = HistoricalBackfill(make_generator(store, NOW)).run()

    assert result.success
    assert [report.order_ids for report in result.reports] == [(1, 2), (3,), (4,)]
    assert [report.period_start for report in result.reports] == [
        at(2023, 12, 27, 18, 0),
        at(2024, 1, 3, 18, 0),
        at(2024, 1, 17, 18, 0),
    ]
    assert all(report.report_id.startswith("historico_") for report in result.reports)
    assert result.to_record()["report_ids"] == [report.report_id for report in result.reports]


def test_already_reported_orders_are_skipped(tmp_path) -> None:
    store = make_store(tmp_path, [make_order(1, at(2024, 1, 4, 10, 0)), make_order(2, at(2024, 1, 18, 9, 0))])
    generator = make_generator(store, at(2024, 1, 5, 0, 0))
    manual = generator.generate_manual()
    assert manual.order_ids == (1,)

    result = HistoricalBackfill(make_generator(store, NOW)).run()

    assert [report.order_ids for report in result.reports] == [(2,)]


def test_failed_week_is_reported_and_filled_on_rerun(tmp_path) -> None:
    inner = make_store(
        tmp_path,
        [
            make_order(1, at(2024, 1, 4, 10, 0)),
            make_order(2, at(2024, 1, 11, 10, 0)),
            make_order(3, at(2024, 1, 18, 10, 0)),
        ],
    )
    store = FlakyStore(inner, fail_on_calls={2})

    result = HistoricalBackfill(make_generator(store, NOW)).run()

    assert not result.success
    assert result.reports_generated == 2
    assert len(result.errors) == 1
    assert "2024-01-10T18:00:00+00:00" in result.errors[0]
    assert not inner.is_order_reported(2)

    retry = HistoricalBackfill(make_generator(inner, NOW)).run()
    assert retry.success
    assert [report.order_ids for report in retry.reports] == [(2,)]
    assert sorted(included_order_ids(inner.list_generated_reports())) == [1, 2, 3]


def test_nothing_pending_is_a_successful_no_op(tmp_path) -> None:
    result = HistoricalBackfill(make_generator(make_store(tmp_path), NOW)).run()
    assert result.success
    assert result.reports_generated == 0
    assert result.errors == []


def test_load_failure_reports_general_error(tmp_path) -> None:
    store = FlakyStore(make_store(tmp_path, [make_order(1, at(2024, 1, 4, 10, 0))]), fail_listing=True)
    result = HistoricalBackfill(make_generator(store, NOW)).run()
    assert not result.success
    assert result.reports_generated == 0
    assert result.errors[0].startswith("General error:")


def test_malformed_order_row_fails_without_raising(tmp_path) -> None:
    store = make_store(tmp_path, [make_order(1, at(2024, 1, 4, 10, 0)), make_order(2, at(2024, 1, 11, 10, 0))])
    corrupt_order_row(store, 2, fecha_pedido=None)

    result = HistoricalBackfill(make_generator(store, NOW)).run()

    assert not result.success
    assert result.reports_generated == 0
    assert result.errors[0].startswith("General error:")
    assert "pedidos row 2" in result.errors[0]
