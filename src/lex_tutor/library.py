"""Study material import and the per-section file library."""
import base64
import json
import mimetypes
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

import yaml
from bs4 import BeautifulSoup
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from loguru import logger
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from lex_tutor.db import DEFAULT_DB_PATH, get_connection, init_db
from lex_tutor.errors import StudyFileError
from lex_tutor.models import StudyFile

HOME_SECTION = "home"

MAX_SYLLABUS_FILES = 5
MAX_SYLLABUS_SIZE_MB = 50
MAX_SYLLABUS_SIZE_BYTES = MAX_SYLLABUS_SIZE_MB * 1024 * 1024

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".heic"}


def _extract_text(path: Path) -> str | None:
    """Text content for formats we can read locally, or None for binary blobs."""
    suffix = path.suffix.lower()
    if suffix in (".txt", ".md"):
        return path.read_text(encoding="utf-8")
    elif suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        return json.dumps(data, indent=2, ensure_ascii=False)
    elif suffix in (".yaml", ".yml"):
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
    elif suffix in (".html", ".htm"):
        html = path.read_text(encoding="utf-8")
        return BeautifulSoup(html, "html.parser").get_text()
    elif suffix == ".docx":
        doc = Document(str(path))
        return "\n".join(p.text for p in doc.paragraphs)
    elif suffix == ".pdf":
        reader = PdfReader(str(path))
        text = "\n".join(page.extract_text() or "" for page in reader.pages)
        # Scanned PDFs have no text layer; send those as a document blob.
        return text if text.strip() else None
    elif suffix in IMAGE_SUFFIXES:
        return None
    # Unknown extension: accept it if it decodes as text.
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return None


def load_study_file(file_path: str, max_bytes: int | None = None) -> StudyFile:
    """Read a file from disk into an immutable StudyFile."""
    path = Path(file_path).expanduser()
    if not path.is_file():
        raise StudyFileError(f"File not found: {file_path}")
    size = path.stat().st_size
    if max_bytes is not None and size > max_bytes:
        raise StudyFileError(
            f'File "{path.name}" is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.'
        )

    try:
        text = _extract_text(path)
    except (OSError, ValueError, yaml.YAMLError, PdfReadError, PackageNotFoundError) as e:
        raise StudyFileError(f"Failed to read file: {path.name} ({e})") from e

    if text is not None:
        mime_type = "text/markdown" if path.suffix.lower() == ".md" else "text/plain"
        content = text
    else:
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        if not (mime_type.startswith("image/") or mime_type == "application/pdf"):
            raise StudyFileError(f"Unsupported file type: {path.name}")
        content = base64.b64encode(path.read_bytes()).decode("ascii")

    logger.debug(f"Loaded {path.name} as {mime_type} ({size} bytes)")
    return StudyFile(id=uuid.uuid4().hex, name=path.name, mime_type=mime_type, content=content)


def load_syllabus_files(file_paths: list[str]) -> list[StudyFile]:
    """Read the documents a syllabus is extracted from, enforcing upload limits."""
    if not file_paths:
        raise StudyFileError("Please upload at least one syllabus file.")
    if len(file_paths) > MAX_SYLLABUS_FILES:
        raise StudyFileError(f"You can upload a maximum of {MAX_SYLLABUS_FILES} files.")
    return [load_study_file(p, max_bytes=MAX_SYLLABUS_SIZE_BYTES) for p in file_paths]


def _row_to_file(row) -> StudyFile:
    return StudyFile(id=row["id"], name=row["name"], mime_type=row["mime_type"], content=row["content"])


class StudyLibrary:
    """Study files attached to syllabus sections, per user.

    Like the key/value store, the library never lets a storage fault escape:
    failures are logged and reads come back empty.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        try:
            init_db(db_path)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Study file storage at {db_path} is unavailable: {e}")

    def _execute(self, sql: str, params: tuple = ()) -> list | None:
        """Run one statement; None when storage is unavailable."""
        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(sql, params).fetchall()
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Study file storage error: {e}")
            return None
        return rows

    def add(self, username: str, section_id: str, study_file: StudyFile) -> StudyFile:
        rows = self._execute(
            """INSERT INTO study_files (id, username, section_id, name, mime_type, content, imported_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (study_file.id, username, section_id, study_file.name, study_file.mime_type,
             study_file.content, datetime.now().isoformat()),
        )
        if rows is not None:
            logger.info(f"Attached {study_file.name} to section {section_id} for '{username}'")
        return study_file

    def import_file(self, username: str, section_id: str, file_path: str) -> StudyFile:
        return self.add(username, section_id, load_study_file(file_path))

    def list_files(self, username: str, section_id: str) -> list[StudyFile]:
        rows = self._execute(
            "SELECT * FROM study_files WHERE username = ? AND section_id = ? ORDER BY imported_at, rowid",
            (username, section_id),
        )
        return [_row_to_file(r) for r in rows or []]

    def files_for(self, username: str, section_id: str) -> list[StudyFile]:
        """Files to ground generation in: the section's own, or every file from home."""
        if section_id != HOME_SECTION:
            return self.list_files(username, section_id)
        rows = self._execute(
            "SELECT * FROM study_files WHERE username = ? ORDER BY imported_at, rowid",
            (username,),
        )
        return [_row_to_file(r) for r in rows or []]

    def remove(self, username: str, file_id: str) -> None:
        self._execute("DELETE FROM study_files WHERE username = ? AND id = ?", (username, file_id))

    def clear(self, username: str) -> None:
        self._execute("DELETE FROM study_files WHERE username = ?", (username,))
