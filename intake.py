import base64
import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class IntakeError(Exception):
    """The selected file could not be read as an image."""


class WasteImage:
    """A single uploaded waste photo."""

    def __init__(self, filename, mimetype, data):
        self.filename = filename
        self.mimetype = mimetype
        self.data = data

    @property
    def preview(self):
        return to_data_url(self.data, self.mimetype)

    def base64_payload(self):
        """Base64 image bytes for transmission, without the data URL header."""
        return strip_data_url_prefix(self.preview)


def to_data_url(data, mimetype):
    return "data:%s;base64,%s" % (mimetype, base64.b64encode(data).decode("ascii"))


def strip_data_url_prefix(value):
    # Remove header if present
    if "," in value:
        return value.split(",", 1)[1]
    return value


def read_image(upload):
    """Read a werkzeug ``FileStorage`` into a ``WasteImage``.

    The bytes are decoded with Pillow so that anything that is not an image
    is refused here rather than by the classification service.
    """
    if upload is None or not upload.filename:
        raise IntakeError("No file selected")
    filename = secure_filename(upload.filename) or "upload"
    try:
        data = upload.read()
    except OSError as e:
        raise IntakeError("Could not read %s: %s" % (filename, e)) from e
    if not data:
        raise IntakeError("%s is empty" % filename)

    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.info("Rejected upload %s: %s", filename, e)
        raise IntakeError("%s is not a readable image" % filename) from e

    mimetype = upload.mimetype
    if not mimetype or not mimetype.startswith("image/"):
        mimetype = Image.MIME.get(image_format, "application/octet-stream")
    return WasteImage(filename, mimetype, data)
