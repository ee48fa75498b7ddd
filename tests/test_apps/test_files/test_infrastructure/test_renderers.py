"""Tests for preview renderers."""

import io
import subprocess
from pathlib import Path
from unittest import mock

import pytest
from PIL import Image

from server.apps.files.exceptions import ThumbnailGenerationError
from server.apps.files.infrastructure.renderers import (
    ImageRenderer,
    PdfPageRenderer,
    VideoFrameRenderer,
)

_RUN = 'server.apps.files.infrastructure.renderers.subprocess.run'


def _open_jpeg(content):
    image = Image.open(io.BytesIO(content))
    image.load()
    return image


def test_image_renderer_fits_box(tmp_path):
    """Large images shrink into the box keeping aspect ratio."""
    source = tmp_path / 'wide.png'
    Image.new('RGB', (1600, 800), 'red').save(source)

    preview = _open_jpeg(ImageRenderer((400, 400)).extract_preview(source))

    assert preview.format == 'JPEG'
    assert preview.size == (400, 200)


def test_image_renderer_flattens_transparency(tmp_path):
    """Transparent images are encoded as RGB JPEG."""
    source = tmp_path / 'logo.png'
    Image.new('RGBA', (100, 50), (0, 0, 255, 0)).save(source)

    preview = _open_jpeg(ImageRenderer((400, 400)).extract_preview(source))

    assert preview.mode == 'RGB'
    assert preview.size == (100, 50)


def test_image_renderer_rejects_garbage(tmp_path):
    """Undecodable content raises a pipeline error."""
    source = tmp_path / 'broken.jpg'
    source.write_bytes(b'not an image')

    with pytest.raises(ThumbnailGenerationError):
        ImageRenderer((400, 400)).extract_preview(source)


def test_pdf_renderer_renders_first_page(tmp_path):
    """First page of a PDF becomes a bounded JPEG."""
    source = tmp_path / 'report.pdf'
    Image.new('RGB', (850, 1100), 'white').save(source, format='PDF')

    preview = _open_jpeg(PdfPageRenderer((400, 400), dpi=150).extract_preview(source))

    assert preview.format == 'JPEG'
    assert max(preview.size) == 400


def test_pdf_renderer_rejects_garbage(tmp_path):
    """Invalid PDFs raise a pipeline error."""
    source = tmp_path / 'report.pdf'
    source.write_bytes(b'%PDF-garbage')

    with pytest.raises(ThumbnailGenerationError):
        PdfPageRenderer((400, 400), dpi=150).extract_preview(source)


def _fake_ffmpeg(frame=b'jpeg-bytes', returncode=0):
    """Build a subprocess.run stand-in that writes ``frame`` to the output."""
    def run(command, **kwargs):
        if frame is not None:
            with open(command[-1], 'wb') as output:
                output.write(frame)
        return subprocess.CompletedProcess(command, returncode, b'', b'ffmpeg said no')
    return run


@pytest.fixture
def video(tmp_path):
    """Small fake video file.

    Returns:
        Path to the file.
    """
    source = tmp_path / 'clip.MP4'
    source.write_bytes(b'\x00' * 64)
    return source


def test_video_renderer_runs_ffmpeg_on_scoped_copy(video):
    """ffmpeg reads a private copy and the copy is removed afterwards."""
    renderer = VideoFrameRenderer(width=400, binary='ffmpeg', timeout=30)

    with mock.patch(_RUN, side_effect=_fake_ffmpeg()) as run:
        preview = renderer.extract_preview(video)

    assert preview == b'jpeg-bytes'
    command = run.call_args.args[0]
    source_copy = command[command.index('-i') + 1]
    assert command[:3] == ['ffmpeg', '-ss', '00:00:01']
    assert command[command.index('-vf') + 1] == 'scale=400:-1'
    assert source_copy != str(video)
    assert source_copy.endswith('.mp4')
    assert run.call_args.kwargs['timeout'] == 30
    assert video.exists()
    assert not Path(source_copy).exists()


def test_video_renderer_nonzero_exit(video):
    """A failing ffmpeg raises a pipeline error."""
    renderer = VideoFrameRenderer(width=400, binary='ffmpeg', timeout=30)

    with mock.patch(_RUN, side_effect=_fake_ffmpeg(returncode=1)):
        with pytest.raises(ThumbnailGenerationError, match='exited with code 1'):
            renderer.extract_preview(video)


@pytest.mark.parametrize('frame', [None, b''])
def test_video_renderer_missing_output(video, frame):
    """A missing or empty frame raises a pipeline error."""
    renderer = VideoFrameRenderer(width=400, binary='ffmpeg', timeout=30)

    with mock.patch(_RUN, side_effect=_fake_ffmpeg(frame=frame)):
        with pytest.raises(ThumbnailGenerationError, match='no frame'):
            renderer.extract_preview(video)


def test_video_renderer_timeout(video):
    """A hung ffmpeg is reported as a pipeline error."""
    renderer = VideoFrameRenderer(width=400, binary='ffmpeg', timeout=1)
    timeout = subprocess.TimeoutExpired(cmd='ffmpeg', timeout=1)

    with mock.patch(_RUN, side_effect=timeout):
        with pytest.raises(ThumbnailGenerationError, match='timed out'):
            renderer.extract_preview(video)


def test_video_renderer_missing_binary(video):
    """An absent ffmpeg is reported as a pipeline error."""
    renderer = VideoFrameRenderer(width=400, binary='no-such-ffmpeg', timeout=1)

    with mock.patch(_RUN, side_effect=FileNotFoundError('no-such-ffmpeg')):
        with pytest.raises(ThumbnailGenerationError, match='Cannot start'):
            renderer.extract_preview(video)
