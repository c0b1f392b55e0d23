"""Tests for directory-mode progress and source reclamation."""
import time

from mediaupscale.dirclone import DirCloneCleaner


def make_files(directory, names):
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_bytes(b"x")


class TestDirCloneCleanerTick:
    """Tests driving the poller one pass at a time."""

    def test_progress_and_deletion_per_tick(self, tmp_path):
        source = tmp_path / "in"
        destination = tmp_path / "out"
        make_files(source, ["00000001.jpg", "00000002.jpg", "00000003.jpg"])
        destination.mkdir()
        events = []
        cleaner = DirCloneCleaner(source, destination, on_progress=lambda c, t: events.append((c, t)))

        for index in range(1, 4):
            make_files(destination, [f"{index:08d}.png"])
            cleaner.tick()

        assert events == [(1, 3), (2, 3), (3, 3)]
        assert list(source.iterdir()) == []
        assert len(list(destination.iterdir())) == 3

    def test_unknown_destination_files_are_ignored(self, tmp_path):
        source = tmp_path / "in"
        destination = tmp_path / "out"
        make_files(source, ["a.png", "b.png"])
        make_files(destination, ["a.png", "stray.txt"])
        events = []
        cleaner = DirCloneCleaner(source, destination, on_progress=lambda c, t: events.append((c, t)))

        cleaner.tick()

        assert events == [(1, 2)]
        assert sorted(p.name for p in source.iterdir()) == ["b.png"]

    def test_snapshot_is_taken_once(self, tmp_path):
        source = tmp_path / "in"
        destination = tmp_path / "out"
        make_files(source, ["a.png"])
        destination.mkdir()
        events = []
        cleaner = DirCloneCleaner(source, destination, on_progress=lambda c, t: events.append((c, t)))

        cleaner.tick()
        make_files(source, ["late.png"])
        cleaner.tick()

        assert events == [(0, 1), (0, 1)]

    def test_missing_destination_counts_nothing(self, tmp_path):
        source = tmp_path / "in"
        make_files(source, ["a.png"])
        events = []
        cleaner = DirCloneCleaner(source, tmp_path / "missing", on_progress=lambda c, t: events.append((c, t)))

        cleaner.tick()

        assert events == [(0, 1)]


class TestDirCloneCleanerThread:
    """Tests for the background polling thread."""

    def test_background_polling(self, tmp_path):
        source = tmp_path / "in"
        destination = tmp_path / "out"
        make_files(source, ["a.png", "b.png"])
        make_files(destination, ["a.png", "b.png"])
        events = []

        with DirCloneCleaner(source, destination, on_progress=lambda c, t: events.append((c, t)), interval=0.01):
            deadline = time.time() + 5
            while (2, 2) not in events and time.time() < deadline:
                time.sleep(0.01)

        assert (2, 2) in events
        assert list(source.iterdir()) == []

    def test_dispose_is_idempotent(self, tmp_path):
        source = tmp_path / "in"
        make_files(source, ["a.png"])
        cleaner = DirCloneCleaner(source, tmp_path / "out", interval=0.01)
        cleaner.start()

        cleaner.dispose(wait=True)
        cleaner.dispose(wait=True)

        assert cleaner.is_disposed

    def test_no_ticks_after_dispose(self, tmp_path):
        source = tmp_path / "in"
        make_files(source, ["a.png"])
        events = []
        cleaner = DirCloneCleaner(source, tmp_path / "out", on_progress=lambda c, t: events.append((c, t)), interval=0.01)
        cleaner.start()
        cleaner.dispose(wait=True)
        count = len(events)

        time.sleep(0.05)

        assert len(events) == count

    def test_start_after_dispose_does_nothing(self, tmp_path):
        cleaner = DirCloneCleaner(tmp_path, tmp_path / "out")
        cleaner.dispose()

        cleaner.start()

        assert cleaner._thread is None
