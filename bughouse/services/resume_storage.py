import logging
import re
import time
from pathlib import Path

from bughouse.core.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_CHARACTERS = re.compile(r'[^A-Za-z0-9._-]')
MAX_NAME_LENGTH = 100


def sanitize_filename(original_name: str | None) -> str:
    """Reduce an uploaded file name to a safe basename."""
    basename = re.split(r'[\\/]', original_name or '')[-1]
    cleaned = _UNSAFE_CHARACTERS.sub('', re.sub(r'\s+', '_', basename.strip())).lstrip('.')
    if not cleaned:
        cleaned = 'resume.pdf'
    return cleaned[-MAX_NAME_LENGTH:]


class ResumeStorage:
    """Resume files under a single root directory. Stored paths are relative to the root."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def save(self, user_id: int, original_name: str | None, content: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        filename = f'{user_id}_{int(time.time() * 1000)}_{sanitize_filename(original_name)}'
        try:
            with open(self.root / filename, 'xb') as handle:
                handle.write(content)
        except FileExistsError as exc:
            raise ConflictError('A resume upload is already in progress. Try again.') from exc

        logger.info('Stored resume %s (%d bytes)', filename, len(content))
        return filename

    def resolve(self, stored_path: str | None) -> Path:
        """Absolute path for ``stored_path``; refuses anything that escapes the root."""
        candidate = (self.root / (stored_path or '')).resolve()
        if candidate == self.root or not candidate.is_relative_to(self.root):
            logger.warning('Refused resume path outside storage root: %s', stored_path)
            raise ValidationError('Invalid resume path.')
        return candidate

    def open_path(self, stored_path: str | None) -> Path:
        path = self.resolve(stored_path)
        if not path.is_file():
            raise NotFoundError('Resume file not found on disk.')
        return path

    def delete(self, stored_path: str) -> None:
        self.resolve(stored_path).unlink(missing_ok=True)
