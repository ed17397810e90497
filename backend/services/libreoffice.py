"""
LibreOffice conversion - DOCX/XLSX to PDF for page counting and PDF export.
Uses the LibreOffice HTTP service when LIBREOFFICE_SERVICE_URL is set, otherwise a local soffice binary.
"""
import asyncio
import os
import shutil
import subprocess
import tempfile
import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

CONVERSION_TIMEOUT_SECONDS = 120


class LibreOfficeError(Exception):
    """Conversion to PDF failed."""
    pass


def _soffice_binary() -> str:
    return os.getenv("SOFFICE_PATH") or shutil.which("soffice") or shutil.which("libreoffice") or "soffice"


def _convert_locally(content: bytes, filename: str) -> bytes:
    """Run soffice headless in a scratch directory and return the PDF bytes."""
    safe_name = Path(filename).name or "document"
    with tempfile.TemporaryDirectory(prefix="lo-convert-") as work_dir:
        src = Path(work_dir) / safe_name
        src.write_bytes(content)
        try:
            r = subprocess.run(
                [
                    _soffice_binary(),
                    "--headless",
                    "--nologo",
                    "--nolockcheck",
                    "--nodefault",
                    "--nofirststartwizard",
                    "--convert-to",
                    "pdf",
                    "--outdir",
                    work_dir,
                    str(src),
                ],
                capture_output=True,
                text=True,
                timeout=CONVERSION_TIMEOUT_SECONDS,
            )
        except FileNotFoundError:
            raise LibreOfficeError("LibreOffice (soffice) not installed or not on PATH")
        except subprocess.TimeoutExpired:
            raise LibreOfficeError("LibreOffice conversion timed out")

        pdf_path = src.with_suffix(".pdf")
        if r.returncode != 0 or not pdf_path.is_file():
            raise LibreOfficeError(
                (r.stderr or r.stdout or f"soffice exited with {r.returncode}").strip()
            )
        return pdf_path.read_bytes()


async def _convert_via_service(service_url: str, content: bytes, filename: str, content_type: str) -> bytes:
    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{service_url.rstrip('/')}/convert-to-pdf",
            files={"file": (filename, content, content_type)},
            timeout=CONVERSION_TIMEOUT_SECONDS,
        )
    if response.status_code != 200:
        raise LibreOfficeError(f"LibreOffice conversion failed: {response.status_code} {response.text}")
    return response.content


async def convert_to_pdf(
    content: bytes,
    filename: str,
    content_type: str = "application/octet-stream",
) -> bytes:
    """Convert an office document to PDF. Raises LibreOfficeError."""
    service_url = os.getenv("LIBREOFFICE_SERVICE_URL")
    try:
        if service_url:
            return await _convert_via_service(service_url, content, filename, content_type)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: _convert_locally(content, filename))
    except LibreOfficeError:
        raise
    except httpx.HTTPError as e:
        logger.error(f"LibreOffice service unreachable: {e}")
        raise LibreOfficeError(f"LibreOffice service unreachable: {e}") from e
