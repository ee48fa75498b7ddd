"""Preview renderers for the thumbnail pipeline.

Each renderer turns a source file into JPEG bytes. Renderers raise
``ThumbnailGenerationError`` on any failure and never write outside a
scratch directory of their own.
"""

import io
import logging
import shutil
import subprocess  # noqa: S404
import tempfile
from pathlib import Path
from typing import Final, Protocol, final

import pypdfium2 as pdfium
from PIL import Image, UnidentifiedImageError

from server.apps.files.exceptions import ThumbnailGenerationError

logger = logging.getLogger(__name__)

_JPEG_FORMAT: Final = 'JPEG'
_JPEG_QUALITY: Final = 85
_PDF_BASE_DPI: Final = 72
_VIDEO_SEEK: Final = '00:00:01'
_STDERR_TAIL: Final = 500


class Renderer(Protocol):
    """Anything that can derive a preview image from a file."""

    def extract_preview(self, source_path: Path) -> bytes:
        """Render ``source_path`` into JPEG bytes."""


def _encode_jpeg(image: Image.Image, box: tuple[int, int]) -> bytes:
    """Fit ``image`` into ``box`` keeping aspect ratio, encode as JPEG."""
    if image.mode in {'RGBA', 'LA'}:
        background = Image.new('RGB', image.size, (255, 255, 255))
        background.paste(image, mask=image.getchannel('A'))
        image = background
    elif image.mode != 'RGB':
        image = image.convert('RGB')

    image.thumbnail(box, Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format=_JPEG_FORMAT, quality=_JPEG_QUALITY)
    return buffer.getvalue()


@final
class ImageRenderer:
    """Downscale raster images with Pillow."""

    def __init__(self, box: tuple[int, int]) -> None:
        """Initialize with the bounding box of the preview."""
        self.box = box

    def extract_preview(self, source_path: Path) -> bytes:
        """Render an image file into a bounded JPEG.

        Args:
            source_path: Image to read.

        Returns:
            JPEG bytes no larger than ``box``.

        Raises:
            ThumbnailGenerationError: If the image cannot be decoded.
        """
        try:
            with Image.open(source_path) as image:
                if image.mode == 'P':
                    image = image.convert('RGBA')
                return _encode_jpeg(image, self.box)
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            raise ThumbnailGenerationError(
                f'Cannot render image preview of {source_path.name}',
            ) from exc


@final
class VideoFrameRenderer:
    """Grab a single frame with ffmpeg."""

    def __init__(self, width: int, binary: str, timeout: float) -> None:
        """Initialize the renderer.

        Args:
            width: Output width, height follows the aspect ratio.
            binary: ffmpeg executable name or path.
            timeout: Seconds before the ffmpeg process is killed.
        """
        self.width = width
        self.binary = binary
        self.timeout = timeout

    def extract_preview(self, source_path: Path) -> bytes:
        """Extract the frame at one second into the video.

        The source is copied into a private scratch directory which is
        removed on every exit path.

        Args:
            source_path: Video to read.

        Returns:
            JPEG bytes of the frame.

        Raises:
            ThumbnailGenerationError: If ffmpeg is missing, times out,
                exits non-zero or produces no output.
        """
        with tempfile.TemporaryDirectory(prefix='thumb-') as scratch:
            scratch_dir = Path(scratch)
            work_copy = scratch_dir / f'source{source_path.suffix.lower()}'
            output = scratch_dir / 'frame.jpg'
            try:
                shutil.copyfile(source_path, work_copy)
            except OSError as exc:
                raise ThumbnailGenerationError(
                    f'Cannot stage video {source_path.name}',
                ) from exc

            self._run_ffmpeg(work_copy, output)

            if not output.is_file() or output.stat().st_size == 0:
                raise ThumbnailGenerationError(
                    f'ffmpeg produced no frame for {source_path.name}',
                )
            return output.read_bytes()

    def _run_ffmpeg(self, source: Path, output: Path) -> None:
        command = [
            self.binary,
            '-ss', _VIDEO_SEEK,
            '-i', str(source),
            '-vframes', '1',
            '-an',
            '-vf', f'scale={self.width}:-1',
            '-qscale:v', '2',
            '-y',
            str(output),
        ]
        logger.debug('Running frame extraction: %s', ' '.join(command))
        try:
            # run() kills the child before re-raising on timeout
            completed = subprocess.run(  # noqa: S603
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ThumbnailGenerationError(
                f'ffmpeg timed out after {self.timeout} seconds',
            ) from exc
        except OSError as exc:
            raise ThumbnailGenerationError(
                f'Cannot start ffmpeg ({self.binary})',
            ) from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode('utf-8', errors='replace')
            logger.error(
                'ffmpeg exited with %d: %s',
                completed.returncode,
                stderr[-_STDERR_TAIL:],
            )
            raise ThumbnailGenerationError(
                f'ffmpeg exited with code {completed.returncode}',
            )


@final
class PdfPageRenderer:
    """Render the first page of a PDF with pdfium."""

    def __init__(self, box: tuple[int, int], dpi: int) -> None:
        """Initialize with the preview box and the rasterization DPI."""
        self.box = box
        self.dpi = dpi

    def extract_preview(self, source_path: Path) -> bytes:
        """Render page one into a bounded JPEG.

        Args:
            source_path: PDF document.

        Returns:
            JPEG bytes no larger than ``box``.

        Raises:
            ThumbnailGenerationError: If the document cannot be opened,
                has no pages or cannot be rasterized.
        """
        try:
            document = pdfium.PdfDocument(source_path)
        except (pdfium.PdfiumError, OSError) as exc:
            raise ThumbnailGenerationError(
                f'Cannot open PDF {source_path.name}',
            ) from exc

        try:
            if len(document) == 0:
                raise ThumbnailGenerationError(
                    f'PDF {source_path.name} has no pages',
                )
            page = document[0]
            try:
                bitmap = page.render(scale=self.dpi / _PDF_BASE_DPI)
                image = bitmap.to_pil()
            finally:
                page.close()
            return _encode_jpeg(image, self.box)
        except pdfium.PdfiumError as exc:
            raise ThumbnailGenerationError(
                f'Cannot render PDF {source_path.name}',
            ) from exc
        finally:
            document.close()
