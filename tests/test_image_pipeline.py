"""Tests for the image pipeline."""
import pytest

from mediaupscale.config import Config, ImageOptions, JpgOptions, UpscaleOptions, WebpOptions
from mediaupscale.errors import EnhancementError, PartialArtifactError
from mediaupscale.image import build_jpg_args, build_webp_args, lanczos_filter, round_half_up, upscale_image


class TestRescale:
    @pytest.mark.parametrize("value,expected", [(1.5, 2), (2.5, 3), (2.49, 2), (960.0, 960)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_lanczos_filter(self):
        assert lanczos_filter(641, 361, 1.5) == "scale=962:542:flags=lanczos"


class TestOutputArgs:
    """Tests for final transcode argument vectors."""

    def test_jpg_flattens_over_background(self, tmp_path):
        config = Config(image=ImageOptions(format="jpg", jpg=JpgOptions(quality=5, background="black")))

        args = build_jpg_args(tmp_path / "in.png", tmp_path / "out.jpg", config, None)

        assert args[args.index("-i", 3) + 1] == "color=c=black"
        assert args[args.index("-filter_complex") + 1] == "[1:v][0:v]scale2ref[bg][img];[bg][img]overlay=shortest=1"
        assert args[args.index("-q:v") + 1] == "5"
        assert args[-1] == str(tmp_path / "out.jpg")

    def test_jpg_rescale_appended_to_graph(self, tmp_path):
        args = build_jpg_args(tmp_path / "in.png", tmp_path / "out.jpg", Config(), "scale=10:10:flags=lanczos")

        assert args[args.index("-filter_complex") + 1].endswith(",scale=10:10:flags=lanczos")

    def test_webp_preset_none_is_omitted(self, tmp_path):
        config = Config(image=ImageOptions(format="webp", webp=WebpOptions(quality=90, preset="none")))

        args = build_webp_args(tmp_path / "in.png", tmp_path / "out.webp", config, None)

        assert "-preset" not in args
        assert args[args.index("-quality") + 1] == "90"
        assert args[args.index("-c:v") + 1] == "libwebp"


class TestUpscaleImage:
    """End-to-end image jobs with faked binaries."""

    def test_png_exact_scale_skips_transcode(self, png_image, config, toolchain, reporter, fake_execute):
        result = upscale_image(png_image, config, toolchain, "job1", reporter)

        assert fake_execute.binaries() == ["waifu2x-ncnn-vulkan"]
        assert result.path == png_image.path.parent / "photo-tmpjob1.png"
        assert result.container == "png"
        assert result.path.exists()
        assert not (png_image.path.parent / "photo-tmpjob1.upscaled.png").exists()
        assert reporter.stages == ["upscaling image"]
        assert (None, None) in reporter.progress_events

    def test_jpg_output_is_transcoded(self, png_image, toolchain, reporter, fake_execute):
        config = Config(image=ImageOptions(format="jpg"))

        result = upscale_image(png_image, config, toolchain, "job2", reporter)

        assert fake_execute.binaries() == ["waifu2x-ncnn-vulkan", "ffmpeg"]
        assert result.path.name == "photo-tmpjob2.jpg"
        assert result.path.exists()
        assert "-filter_complex" in fake_execute.calls_to("ffmpeg")[0]
        assert reporter.stages == ["upscaling image", "encoding image"]
        assert sorted(p.name for p in png_image.path.parent.iterdir()) == ["photo-tmpjob2.jpg", "photo.png"]

    def test_fractional_scale_rescales_png(self, png_image, toolchain, reporter, fake_execute):
        config = Config(upscale=UpscaleOptions(scale=1.5))

        result = upscale_image(png_image, config, toolchain, "job3", reporter)

        upscaler_args = fake_execute.calls_to("waifu2x-ncnn-vulkan")[0]
        assert upscaler_args[upscaler_args.index("-s") + 1] == "2"
        ffmpeg_args = fake_execute.calls_to("ffmpeg")[0]
        assert ffmpeg_args[ffmpeg_args.index("-vf") + 1] == "scale=960:720:flags=lanczos"
        assert result.container == "png"

    def test_fixed_4x_model_is_downscaled_to_request(self, png_image, toolchain, reporter, fake_execute):
        config = Config(upscale=UpscaleOptions(model="realesrgan-x4plus", scale=2))

        upscale_image(png_image, config, toolchain, "job7", reporter)

        assert fake_execute.binaries() == ["realesrgan-ncnn-vulkan", "ffmpeg"]
        ffmpeg_args = fake_execute.calls_to("ffmpeg")[0]
        assert ffmpeg_args[ffmpeg_args.index("-vf") + 1] == "scale=1280:960:flags=lanczos"

    def test_unsupported_input_is_converted_first(self, bmp_image, config, toolchain, reporter, fake_execute):
        result = upscale_image(bmp_image, config, toolchain, "job4", reporter)

        assert fake_execute.binaries() == ["ffmpeg", "waifu2x-ncnn-vulkan"]
        converted = bmp_image.path.parent / "scan-tmpjob4.src.png"
        upscaler_args = fake_execute.calls_to("waifu2x-ncnn-vulkan")[0]
        assert upscaler_args[upscaler_args.index("-i") + 1] == str(converted)
        assert not converted.exists()
        assert result.path.exists()

    def test_upscaler_failure(self, png_image, config, toolchain, reporter, fake_execute):
        fake_execute.fail_on = lambda name, args: name == "waifu2x-ncnn-vulkan"

        with pytest.raises(EnhancementError) as exc_info:
            upscale_image(png_image, config, toolchain, "job5", reporter)

        assert "waifu2x-ncnn-vulkan failed" in str(exc_info.value.__cause__)
        assert [p.name for p in png_image.path.parent.iterdir()] == ["photo.png"]

    def test_transcode_failure_deletes_partial_output(self, png_image, toolchain, reporter, fake_execute):
        fake_execute.fail_on = lambda name, args: name == "ffmpeg"
        config = Config(image=ImageOptions(format="webp"))

        with pytest.raises(PartialArtifactError):
            upscale_image(png_image, config, toolchain, "job6", reporter)

        assert [p.name for p in png_image.path.parent.iterdir()] == ["photo.png"]
