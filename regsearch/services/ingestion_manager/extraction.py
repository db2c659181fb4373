import logging

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


def is_pdf(document_bytes: bytes) -> bool:
    return document_bytes[:1024].lstrip().startswith(PDF_MAGIC)


def extract_pdf_text(document_bytes: bytes) -> str:
    """Concatenate the text layer of every page, one page per block."""
    with fitz.open(stream=document_bytes, filetype="pdf") as doc:
        logger.info(f"[PDFExtractor] Extracting {doc.page_count} pages")
        pages = [page.get_text("text") for page in doc]
    return "\n\n".join(pages)


def extract_text(document_bytes: bytes) -> str:
    """
    Raw text of a document.

    PDF bytes go through PyMuPDF; anything else must be UTF-8 text.

    Raises:
        UnicodeDecodeError: Non-PDF bytes that are not valid UTF-8
        RuntimeError: PyMuPDF could not open the document
    """
    if is_pdf(document_bytes):
        return extract_pdf_text(document_bytes)
    return document_bytes.decode("utf-8-sig")
