import asyncio

from app.core.enums import ErrorType
from app.models import SyncResult
from services.batch_runner import BatchRunner


def test_failures_do_not_abort_other_items():
    progress = []

    def worker(item):
        if item == 3:
            return SyncResult.fail(ErrorType.CONNECTION_ERROR, "servis hatası", 500)
        if item == 4:
            raise RuntimeError("patladı")
        return SyncResult.ok({"item": item})

    result = asyncio.run(BatchRunner(2).run(
        [1, 2, 3, 4, 5],
        worker,
        item_id=str,
        on_progress=lambda current, total: progress.append((current, total)),
    ))

    summary = result.data
    assert result.success
    assert [r.item_id for r in summary.results] == ["1", "2", "3", "4", "5"]
    assert [r.success for r in summary.results] == [True, True, False, False, True]
    assert summary.succeeded == 3
    assert summary.failed == 2
    assert summary.progress.current == 5
    assert progress[-1] == (5, 5)
    assert len(progress) == 5


def test_concurrency_window_is_respected():
    running = 0
    peak = 0

    async def worker(item):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return SyncResult.ok()

    result = asyncio.run(BatchRunner(3).run(list(range(10)), worker, item_id=str))

    assert result.data.succeeded == 10
    assert peak <= 3


def test_empty_input_returns_no_products():
    result = asyncio.run(BatchRunner(3).run([], lambda item: SyncResult.ok()))

    assert not result.success
    assert result.error_type == ErrorType.NO_PRODUCTS


def test_progress_callback_error_is_ignored():
    def broken_progress(current, total):
        raise ValueError("ui kapandı")

    result = asyncio.run(BatchRunner(1).run(["a", "b"], lambda item: SyncResult.ok(), on_progress=broken_progress))

    assert result.data.succeeded == 2


def test_failing_item_id_does_not_abort_batch():
    def label(item):
        if item == 2:
            raise KeyError("sku")
        return f"sku-{item}"

    result = asyncio.run(BatchRunner(2).run([1, 2, 3], lambda item: SyncResult.ok(), item_id=label))

    summary = result.data
    assert [r.item_id for r in summary.results] == ["sku-1", "#1", "sku-3"]
    assert [r.item_label for r in summary.results] == ["sku-1", "#1", "sku-3"]
    assert summary.succeeded == 3
    assert summary.progress.current == 3
