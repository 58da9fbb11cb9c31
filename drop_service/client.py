"""
HTTP client for the drop service.

Implements the client half of the upload workflow: ask for presigned slots,
PUT each file straight to object storage, then confirm the files that made
it. A multi-file upload is not atomic, so the result reports an outcome per
file instead of one pass/fail.
"""
import mimetypes
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import httpx
from pydantic import BaseModel

from drop_service.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "http://localhost:8001"
CHUNK_SIZE = 1024 * 1024


class DropClientError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class FileUploadOutcome(BaseModel):
    path: str
    name: str
    storage_key: Optional[str] = None
    uploaded: bool = False
    error: Optional[str] = None


class UploadReport(BaseModel):
    outcomes: List[FileUploadOutcome]
    entry: Optional[Dict[str, Any]] = None
    confirm_error: Optional[str] = None

    @property
    def failed(self) -> List[FileUploadOutcome]:
        return [o for o in self.outcomes if not o.uploaded]


def _iter_file(path: Path) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            yield chunk


def _guess_mime(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


class DropClient:
    def __init__(self, base_url: str = DEFAULT_API_URL, http: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.http = http or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Request to {url} failed: {e}")
            raise DropClientError(0, f"Drop service unreachable: {e}") from e
        if response.is_error:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise DropClientError(response.status_code, message)
        return response.json()

    def request_upload_slots(self, files: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._request("POST", "/entries/upload-slots", json={"files": list(files)})["uploads"]

    def send_text(self, text: str) -> Dict[str, Any]:
        return self._request("POST", "/entries", json={"type": "text", "text": text})["entry"]

    def confirm_files(self, files: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request("POST", "/entries", json={"type": "file", "files": list(files)})["entry"]

    def list_entries(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/entries")

    def download_url(self, entry_id: str, storage_key: Optional[str] = None) -> Dict[str, Any]:
        body = {"storageKey": storage_key} if storage_key else None
        return self._request("POST", f"/entries/{entry_id}/download-url", json=body)

    def delete_entry(self, entry_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/entries/{entry_id}")

    def upload_files(self, paths: Sequence[Union[str, Path]]) -> UploadReport:
        paths = [Path(p) for p in paths]
        metas = [
            {"name": p.name, "size": p.stat().st_size, "mime": _guess_mime(p)}
            for p in paths
        ]
        slots = self.request_upload_slots(metas)

        outcomes = []
        confirmed = []
        for path, meta, slot in zip(paths, metas, slots):
            outcome = FileUploadOutcome(path=str(path), name=meta["name"], storage_key=slot["storageKey"])
            try:
                response = self.http.put(
                    slot["uploadUrl"],
                    content=_iter_file(path),
                    headers={"Content-Type": meta["mime"], "Content-Length": str(meta["size"])},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                outcome.error = f"storage rejected upload with {e.response.status_code}"
            except (httpx.RequestError, OSError) as e:
                outcome.error = str(e)
            else:
                outcome.uploaded = True
                confirmed.append({**meta, "storageKey": slot["storageKey"]})
            if outcome.error:
                logger.warning(f"Upload of '{path}' failed: {outcome.error}")
            outcomes.append(outcome)

        report = UploadReport(outcomes=outcomes)
        if not confirmed:
            return report
        try:
            report.entry = self.confirm_files(confirmed)
        except DropClientError as e:
            # Objects that reached storage stay there unrecorded.
            logger.error(f"Confirming {len(confirmed)} uploaded file(s) failed: {e.message}")
            report.confirm_error = e.message
        return report

    def download(self, entry_id: str, destination: Union[str, Path], storage_key: Optional[str] = None) -> Path:
        link = self.download_url(entry_id, storage_key)
        destination = Path(destination)
        try:
            with self.http.stream("GET", link["downloadUrl"]) as response:
                response.raise_for_status()
                with open(destination, "wb") as out_file:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        out_file.write(chunk)
        except httpx.HTTPStatusError as e:
            raise DropClientError(e.response.status_code, "storage refused the download") from e
        except httpx.RequestError as e:
            raise DropClientError(0, f"Object storage unreachable: {e}") from e
        return destination
