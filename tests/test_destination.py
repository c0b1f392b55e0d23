"""Tests for destination templates and saving."""
import pytest

from mediaupscale.config import SavingOptions
from mediaupscale.destination import check_template, format_destination, get_unique_path, save_as_path
from mediaupscale.errors import ConfigurationError


class TestCheckTemplate:
    """Tests for template validation."""

    @pytest.mark.parametrize("template", [
        "{dir}/{name}-upscaled.{ext}",
        "/out/{name}.{container}",
        "{dir}/{date}/{name}-{job}-{time}.{ext}",
        "{name}.{ext}",
    ])
    def test_valid(self, template):
        check_template(SavingOptions(destination=template))

    @pytest.mark.parametrize("template,message", [
        ("", "empty"),
        ("   ", "empty"),
        ("{dir}/{nam}.{ext}", "unknown variable"),
        ("{dir}/{name", "Destination template error"),
        ("{dir}/{name:>10}.{ext}", "format"),
        ("{dir}/{name!r}.{ext}", "format"),
        ("{dir}/", "file name"),
    ])
    def test_invalid(self, template, message):
        with pytest.raises(ConfigurationError, match=message):
            check_template(SavingOptions(destination=template))

    def test_unknown_variable_lists_available(self):
        with pytest.raises(ConfigurationError) as exc_info:
            check_template(SavingOptions(destination="{folder}/{name}.{ext}"))

        assert "{name}" in str(exc_info.value)
        assert "{folder}" in str(exc_info.value)


class TestFormatDestination:
    def test_variables(self, tmp_path):
        saving = SavingOptions(destination="{dir}/{name}-{job}.{ext}")

        path = format_destination(tmp_path / "photo.jpg", "png", saving, "abc123")

        assert path == tmp_path / "photo-abc123.png"

    def test_relative_template_resolves_against_input_dir(self, tmp_path):
        saving = SavingOptions(destination="upscaled/{name}.{container}")

        path = format_destination(tmp_path / "clip.mp4", "mkv", saving)

        assert path == tmp_path / "upscaled" / "clip.mkv"


class TestGetUniquePath:
    def test_free_path_is_kept(self, tmp_path):
        assert get_unique_path(tmp_path / "a.png") == tmp_path / "a.png"

    def test_counter_is_appended(self, tmp_path):
        (tmp_path / "a.png").write_bytes(b"x")
        (tmp_path / "a (1).png").write_bytes(b"x")

        assert get_unique_path(tmp_path / "a.png") == tmp_path / "a (2).png"


class TestSaveAsPath:
    """Tests for moving a finished result into place."""

    def make_result(self, tmp_path):
        source = tmp_path / "photo.jpg"
        source.write_bytes(b"original")
        tmp = tmp_path / "photo-tmpjob.png"
        tmp.write_bytes(b"upscaled")
        return source, tmp

    def test_moves_result(self, tmp_path):
        source, tmp = self.make_result(tmp_path)

        saved = save_as_path(source, tmp, "png", SavingOptions())

        assert saved == tmp_path / "photo-upscaled.png"
        assert saved.read_bytes() == b"upscaled"
        assert not tmp.exists()
        assert source.exists()

    def test_existing_file_is_kept_without_overwrite(self, tmp_path):
        source, tmp = self.make_result(tmp_path)
        (tmp_path / "photo-upscaled.png").write_bytes(b"older")

        saved = save_as_path(source, tmp, "png", SavingOptions())

        assert saved == tmp_path / "photo-upscaled (1).png"
        assert (tmp_path / "photo-upscaled.png").read_bytes() == b"older"

    def test_overwrite_replaces_existing(self, tmp_path):
        source, tmp = self.make_result(tmp_path)
        (tmp_path / "photo-upscaled.png").write_bytes(b"older")

        saved = save_as_path(source, tmp, "png", SavingOptions(overwrite=True))

        assert saved == tmp_path / "photo-upscaled.png"
        assert saved.read_bytes() == b"upscaled"

    def test_creates_missing_directories(self, tmp_path):
        source, tmp = self.make_result(tmp_path)

        saved = save_as_path(source, tmp, "png", SavingOptions(destination="{dir}/out/{date}/{name}.{ext}"))

        assert saved.exists()
        assert saved.parent.parent == tmp_path / "out"

    def test_delete_original(self, tmp_path):
        source, tmp = self.make_result(tmp_path)

        save_as_path(source, tmp, "png", SavingOptions(delete_original=True))

        assert not source.exists()

    def test_delete_original_never_deletes_the_result(self, tmp_path):
        source = tmp_path / "photo.png"
        source.write_bytes(b"original")
        tmp = tmp_path / "photo-tmpjob.png"
        tmp.write_bytes(b"upscaled")

        saved = save_as_path(source, tmp, "png", SavingOptions(destination="{dir}/{name}.{ext}", overwrite=True, delete_original=True))

        assert saved == source
        assert saved.read_bytes() == b"upscaled"
