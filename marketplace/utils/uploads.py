from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Optional

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import ValidationError

PUBLIC_PREFIX = '/uploads/'


def _extension(filename: str) -> str:
    return filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''


def save_image(upload: Optional[FileStorage]) -> Optional[str]:
    """Store an uploaded image and return its public path, or None when absent."""
    if upload is None or not upload.filename:
        return None
    allowed = current_app.config['ALLOWED_IMAGE_EXTENSIONS']
    mimetype = (upload.mimetype or '').lower()
    if _extension(upload.filename) not in allowed or not mimetype.startswith('image/'):
        raise ValidationError('Only image files are allowed (jpeg, jpg, png, gif, webp)')

    folder = Path(current_app.config['UPLOAD_FOLDER'])
    folder.mkdir(parents=True, exist_ok=True)
    filename = f"{int(time.time() * 1000)}-{secure_filename(upload.filename)}"
    upload.save(folder / filename)
    return PUBLIC_PREFIX + filename


def remove_image(public_path: Optional[str]) -> None:
    if not public_path or not public_path.startswith(PUBLIC_PREFIX):
        return
    path = Path(current_app.config['UPLOAD_FOLDER']) / os.path.basename(public_path)
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        current_app.logger.warning('Could not remove upload %s: %s', path, exc)
