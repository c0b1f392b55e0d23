"""Tests for the process output progress translator."""
import logging

import pytest

from mediaupscale.progress import RECENT_OUTPUT_SIZE, ProgressTranslator, time_to_ms


class TestTimeToMs:
    """Tests for timestamp parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("1:30:40.500", 5440500),
        ("00:00.250", 250),
        ("45", 45000),
        ("00:01:00", 60000),
        ("0:00:00.04", 40),
    ])
    def test_examples(self, text, expected):
        assert time_to_ms(text) == pytest.approx(expected)


class Recorder:
    def __init__(self):
        self.progress = []
        self.logs = []

    def translator(self, **kwargs) -> ProgressTranslator:
        return ProgressTranslator(
            on_progress=lambda current, total: self.progress.append((current, total)),
            on_log=self.logs.append,
            **kwargs,
        )


class TestPercentVocabulary:
    """Upscaler style ``NN.NN%`` output."""

    def test_percent_lines_emit_progress(self):
        recorder = Recorder()
        translator = recorder.translator()

        translator("0.00%\n12.50%\n100.00%\n")

        assert recorder.progress == [(0.0, 100), (12.5, 100), (100.0, 100)]
        assert recorder.logs == []

    def test_other_lines_go_to_log(self):
        recorder = Recorder()
        translator = recorder.translator()

        translator("[0 NVIDIA GeForce]  queueC=2[8]\n25.00%\n")

        assert recorder.progress == [(25.0, 100)]
        assert recorder.logs == ["[0 NVIDIA GeForce]  queueC=2[8]"]

    def test_progress_lines_are_logged_at_debug(self, caplog):
        recorder = Recorder()
        translator = recorder.translator()

        with caplog.at_level(logging.DEBUG, logger="mediaupscale.progress"):
            translator("12.50%\n")

        assert recorder.logs == []
        assert [r.getMessage() for r in caplog.records] == ["12.50%"]

    def test_percent_disabled(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator("50.00%\n")

        assert recorder.progress == []
        assert recorder.logs == ["50.00%"]


class TestTimeVocabulary:
    """ffmpeg style ``Duration:`` preamble and ``frame=`` status lines."""

    PREAMBLE = (
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'clip.mp4':\n"
        "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1200 kb/s\n"
    )

    def test_status_lines_emit_elapsed_and_total(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator(self.PREAMBLE)
        translator("frame=   30 fps=0.0 q=-0.0 size=N/A time=00:00:01.00 bitrate=N/A\r")
        translator("frame=  150 fps=60 q=-0.0 size=N/A time=00:00:05.00 bitrate=N/A\r")

        assert translator.duration_ms == 10000
        assert recorder.progress == [(1000, 10000), (5000, 10000)]

    def test_elapsed_never_exceeds_total(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator(self.PREAMBLE)
        translator("frame=  330 time=00:00:11.00 bitrate=N/A\n")

        assert recorder.progress == []

    def test_duration_locked_after_first_status_line(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator("frame=    1 time=00:00:00.03\n")
        translator("  Duration: 00:00:10.00, start: 0.000000\n")
        translator("frame=   60 time=00:00:02.00\n")

        assert translator.duration_ms is None
        assert recorder.progress == []

    def test_duration_split_across_chunks(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator("Input #0, matroska,webm, from 'a.mkv':\n  Durat")
        translator("ion: 00:01:00.00, start: 0.000000\n")
        translator("frame=  720 time=00:00:30.00\n")

        assert translator.duration_ms == 60000
        assert recorder.progress == [(30000, 60000)]

    def test_status_lines_without_duration_are_swallowed(self):
        recorder = Recorder()
        translator = recorder.translator(percent=False)

        translator("size=     256kB time=00:00:02.00 bitrate= 100kbits/s\n")

        assert recorder.progress == []
        assert recorder.logs == []

    def test_percent_in_status_line_is_not_percent_progress(self):
        recorder = Recorder()
        translator = recorder.translator()

        translator(self.PREAMBLE)
        translator("frame=   30 time=00:00:01.00\n")
        translator("[libx264] mb I  I16..4: 15.2% 60.1% 24.7%\n")

        assert recorder.progress == [(1000, 10000)]
        assert recorder.logs[-1].startswith("[libx264]")


class TestRecentOutput:
    def test_buffer_is_bounded(self):
        translator = ProgressTranslator()

        translator("x" * (RECENT_OUTPUT_SIZE * 3))

        assert len(translator.recent_output) == RECENT_OUTPUT_SIZE
