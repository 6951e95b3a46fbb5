"""
Image blobs and base64 data URI encoding.

Every inference flow exchanges images as data URIs of the form
``data:<mime type>;base64,<payload>``.
"""

import base64
import binascii
import io
import re
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, field_validator

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w-]+=[\w.+-]+)*;base64,(?P<payload>.*)$",
    re.DOTALL,
)

DEFAULT_ALLOWED_FORMATS = ["jpeg", "jpg", "png", "webp"]


class ImageBlob(BaseModel):
    """An immutable encoded image: format plus bytes."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes = Field(..., min_length=1)

    @field_validator("mime_type")
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only image media types are accepted."""
        v = v.strip().lower()
        if not v.startswith("image/"):
            raise ValueError(f"Not an image media type: {v}")
        return v

    @property
    def format(self) -> str:
        """Short format name, e.g. ``jpeg`` or ``png``."""
        return self.mime_type.split("/", 1)[1]

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_data_uri(self) -> str:
        """Encode as a base64 data URI."""
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImageBlob":
        """Decode a base64 data URI.

        Raises:
            ValueError: if the URI is not a base64 image data URI or carries
                no payload
        """
        if not isinstance(uri, str):
            raise ValueError("Data URI must be a string")

        match = DATA_URI_PATTERN.match(uri.strip())
        if match is None:
            raise ValueError("Not a base64 data URI")

        try:
            data = base64.b64decode(match.group("payload"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {str(e)}")

        if not data:
            raise ValueError("Data URI has an empty payload")

        return cls(mime_type=match.group("mime"), data=data)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        max_size_mb: int = 10,
        allowed_formats: list[str] | None = None,
    ) -> "ImageBlob":
        """Load and validate an image file.

        The file must decode as an image whose format is in
        ``allowed_formats`` and must not exceed ``max_size_mb``.

        Raises:
            FileNotFoundError: if the path does not exist
            ValueError: if the file is too large, not an image, or not an
                allowed format
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")

        data = path.read_bytes()
        return cls.from_bytes(data, max_size_mb=max_size_mb, allowed_formats=allowed_formats)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        max_size_mb: int = 10,
        allowed_formats: list[str] | None = None,
    ) -> "ImageBlob":
        """Validate raw image bytes with Pillow and wrap them."""
        allowed = [fmt.lower() for fmt in (allowed_formats or DEFAULT_ALLOWED_FORMATS)]

        max_size_bytes = max_size_mb * 1024 * 1024
        if len(data) > max_size_bytes:
            raise ValueError(
                f"Image too large: {len(data)} bytes (max: {max_size_bytes} bytes)"
            )

        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
                image_format = img.format
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValueError(f"Image validation failed: {str(e)}")

        if image_format is None or image_format.lower() not in allowed:
            raise ValueError(f"Image format not supported: {image_format}")

        mime_type = Image.MIME.get(image_format, f"image/{image_format.lower()}")
        return cls(mime_type=mime_type, data=data)
