from unittest.mock import MagicMock

from hyprism.models.progress import ProgressEvent, ProgressStage, emit_progress


def test_emit_progress_without_callback() -> None:
    emit_progress(None, ProgressStage.DOWNLOAD, 50, "Downloading...")


def test_emit_progress_builds_event() -> None:
    events: list[ProgressEvent] = []

    emit_progress(
        events.append,
        ProgressStage.DOWNLOAD,
        42.5,
        "Downloading game patch...",
        current_file="7.pwr",
        transfer_rate="1.5 MB/s",
        bytes_downloaded=425,
        bytes_total=1000,
    )

    assert events == [
        ProgressEvent(
            stage=ProgressStage.DOWNLOAD,
            fraction=42.5,
            message="Downloading game patch...",
            current_file="7.pwr",
            transfer_rate="1.5 MB/s",
            bytes_downloaded=425,
            bytes_total=1000,
        )
    ]


def test_emit_progress_clamps_fraction() -> None:
    events: list[ProgressEvent] = []
    emit_progress(events.append, ProgressStage.INSTALL, 150, "over")
    emit_progress(events.append, ProgressStage.INSTALL, -5, "under")

    assert [event.fraction for event in events] == [100.0, 0.0]


def test_failing_callback_is_contained() -> None:
    callback = MagicMock(side_effect=RuntimeError("observer bug"))

    emit_progress(callback, ProgressStage.COMPLETE, 100, "done")

    callback.assert_called_once()


def test_stage_values() -> None:
    assert [stage.value for stage in ProgressStage] == [
        "version",
        "download",
        "install",
        "complete",
    ]
