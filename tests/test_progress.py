"""Tests for progress scaling."""

from batch_bgremover.progress import ProgressReporter


def test_internal_progress_maps_onto_processing_range() -> None:
    seen = []
    reporter = ProgressReporter(seen.append)

    reporter(0)
    reporter(25)
    reporter(75)

    assert seen == [50, 62, 87]


def test_progress_never_reaches_completed_value() -> None:
    seen = []
    reporter = ProgressReporter(seen.append)

    reporter(100)
    reporter(250)

    assert seen == [99, 99]


def test_backwards_updates_are_dropped() -> None:
    seen = []
    reporter = ProgressReporter(seen.append)

    reporter(80)
    reporter(20)
    reporter(-5)

    assert seen == [90]
    assert reporter.last == 90
