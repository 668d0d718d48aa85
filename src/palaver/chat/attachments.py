import base64
import mimetypes
from pathlib import Path

MAX_IMAGE_BYTES = 5 * 1024 * 1024


class AttachmentError(Exception):
    pass


def image_to_data_url(path: str | Path, max_bytes: int = MAX_IMAGE_BYTES) -> str:
    target = Path(path).expanduser()
    if not target.is_file():
        raise AttachmentError(f"No such file: {target}")
    mime_type, _ = mimetypes.guess_type(target.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise AttachmentError(f"Not an image: {target.name}")
    data = target.read_bytes()
    if len(data) > max_bytes:
        raise AttachmentError(f"Images larger than {max_bytes // (1024 * 1024)} MB cannot be attached")
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
