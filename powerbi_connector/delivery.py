"""
File delivery headers for HTTP callers.

The content type follows the requested export format; the disposition
asks the browser to display the file inline under a filename.
"""

import re
from typing import Optional, Union
from urllib.parse import quote

from powerbi_connector.models import ExportedFile, FileFormat


CONTENT_TYPES = {
    FileFormat.ACCESSIBLEPDF: "application/pdf",
    FileFormat.CSV: "text/csv",
    FileFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    FileFormat.IMAGE: "image/tiff",
    FileFormat.MHTML: "multipart/related",
    FileFormat.PDF: "application/pdf",
    FileFormat.PNG: "image/png",
    FileFormat.PPTX: "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    FileFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    FileFormat.XML: "application/xml",
}

# IMAGE exports may come back as other raster types
IMAGE_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


def content_type_for(file_format: Union[str, FileFormat], file_extension: Optional[str] = None) -> str:
    """MIME type for an export format."""
    file_format = FileFormat.parse(file_format)
    if file_format == FileFormat.IMAGE and file_extension:
        return IMAGE_EXTENSIONS.get(file_extension.lower(), CONTENT_TYPES[file_format])
    return CONTENT_TYPES.get(file_format, "application/octet-stream")


def content_disposition(filename: str, inline: bool = True) -> str:
    """
    Content-Disposition value with an ASCII fallback and RFC 5987 name.
    """
    disposition = "inline" if inline else "attachment"
    fallback = re.sub(r'[^A-Za-z0-9._ -]', "_", filename).strip() or "Export"
    header = f'{disposition}; filename="{fallback}"'
    if fallback != filename:
        header += f"; filename*=UTF-8''{quote(filename)}"
    return header


def build_download_headers(
    exported_file: ExportedFile,
    file_format: Union[str, FileFormat],
    filename: Optional[str] = None,
    inline: bool = True,
) -> dict[str, str]:
    """Response headers for streaming an exported file to a browser."""
    return {
        "Content-Type": content_type_for(file_format, exported_file.file_extension),
        "Content-Disposition": content_disposition(filename or exported_file.filename, inline=inline),
    }
