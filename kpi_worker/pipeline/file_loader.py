from pathlib import Path

from kpi_worker.pipeline.exceptions import FileReadError
from kpi_worker.pipeline.models import Document


def document_file_path(files_root: Path, analysis_id: str, file_name: str) -> Path:
    """Build path to document file: {files_root}/{analysis_id}/{file_name}"""
    return files_root / analysis_id / file_name


class FileLoader:
    """Resolves filesystem path for a document and reads its bytes."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def load(self, document: Document) -> bytes:
        """Read document bytes from disk.

        Raises:
            FileReadError: if the name escapes the analysis directory, or the
                file does not exist or cannot be read.
        """
        if Path(document.file_name).name != document.file_name:
            raise FileReadError(f"Invalid file name: {document.file_name!r}")
        path = document_file_path(self._files_root, document.analysis_id, document.file_name)
        if not path.is_file():
            raise FileReadError(f"File not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Failed to read {path}: {exc}") from exc
