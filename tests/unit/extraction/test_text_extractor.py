from unittest.mock import MagicMock, patch

import httpx
import pytest

from bloodwork.core.exceptions import (
    APITimeoutError,
    OCRExtractionError,
    TextExtractionError,
    UnsupportedDocumentTypeError,
)
from bloodwork.services.extraction.text_extractor import (
    DocumentFormat,
    ImageTextExtractor,
    PdfTextExtractor,
    get_text_extractor,
)


def _ocr_response(payload, status_code=200):
    response = MagicMock(status_code=status_code)
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


@pytest.mark.parametrize("mime_type,expected", [
    ("application/pdf", PdfTextExtractor),
    ("image/png", ImageTextExtractor),
    ("IMAGE/JPEG; charset=binary", ImageTextExtractor),
    ("image/webp", ImageTextExtractor),
])
def test_get_text_extractor_dispatches_on_mime_type(mime_type, expected):
    assert isinstance(get_text_extractor(mime_type), expected)


@pytest.mark.parametrize("mime_type", ["text/plain", "application/msword", "", None])
def test_unsupported_type_fails_before_any_network_call(mime_type):
    with patch("httpx.AsyncClient.post") as mock_post:
        with pytest.raises(UnsupportedDocumentTypeError):
            get_text_extractor(mime_type)
        mock_post.assert_not_called()


def test_document_format_from_mime_type():
    assert DocumentFormat.from_mime_type("application/pdf") is DocumentFormat.PDF
    assert DocumentFormat.from_mime_type("image/gif") is DocumentFormat.IMAGE


@pytest.mark.asyncio
async def test_pdf_text_layer_is_joined_across_pages():
    pages = [MagicMock(), MagicMock()]
    pages[0].extract_text.return_value = "Glucose 92 mg/dL"
    pages[1].extract_text.return_value = "Ferritin 48 ng/mL"
    pdf = MagicMock(pages=pages)
    pdf.__enter__ = MagicMock(return_value=pdf)
    pdf.__exit__ = MagicMock(return_value=None)

    with patch("pdfplumber.open", return_value=pdf):
        result = await PdfTextExtractor().extract(b"%PDF-1.4")

    assert result.text == "Glucose 92 mg/dL\nFerritin 48 ng/mL"
    assert 0.0 <= result.confidence <= 1.0
    assert result.metadata["page_count"] == 2


@pytest.mark.asyncio
async def test_scanned_pdf_without_text_layer_fails():
    page = MagicMock()
    page.extract_text.return_value = None
    pdf = MagicMock(pages=[page])
    pdf.__enter__ = MagicMock(return_value=pdf)
    pdf.__exit__ = MagicMock(return_value=None)

    with patch("pdfplumber.open", return_value=pdf):
        with pytest.raises(TextExtractionError, match="No text layer"):
            await PdfTextExtractor().extract(b"%PDF-1.4")


@pytest.mark.asyncio
async def test_corrupt_pdf_raises_text_extraction_error():
    with patch("pdfplumber.open", side_effect=ValueError("bad xref")):
        with pytest.raises(TextExtractionError, match="bad xref"):
            await PdfTextExtractor().extract(b"not a pdf")


@pytest.mark.asyncio
@pytest.mark.parametrize("exit_code,confidence", [(1, 0.8), (2, 0.6)])
async def test_image_confidence_follows_exit_code(exit_code, confidence):
    payload = {
        "IsErroredOnProcessing": False,
        "ParsedResults": [{"ParsedText": "TSH 2.1 mIU/L", "FileParseExitCode": exit_code}],
    }
    extractor = ImageTextExtractor(mime_type="image/png", api_key="key")

    with patch("httpx.AsyncClient.post") as mock_post:
        mock_post.return_value = _ocr_response(payload)
        result = await extractor.extract(b"\x89PNG")

    assert result.text == "TSH 2.1 mIU/L"
    assert result.confidence == confidence
    _, kwargs = mock_post.call_args
    assert kwargs["data"]["base64Image"].startswith("data:image/png;base64,")
    assert kwargs["headers"] == {"apikey": "key"}


@pytest.mark.asyncio
async def test_image_errored_on_processing_is_fatal():
    payload = {"IsErroredOnProcessing": True, "ErrorMessage": ["Unable to recognize the file type"]}

    with patch("httpx.AsyncClient.post") as mock_post:
        mock_post.return_value = _ocr_response(payload)
        with pytest.raises(OCRExtractionError, match="Unable to recognize"):
            await ImageTextExtractor().extract(b"\xff\xd8")


@pytest.mark.asyncio
async def test_image_with_no_text_is_fatal():
    payload = {"IsErroredOnProcessing": False, "ParsedResults": [{"ParsedText": "  ", "FileParseExitCode": 1}]}

    with patch("httpx.AsyncClient.post") as mock_post:
        mock_post.return_value = _ocr_response(payload)
        with pytest.raises(OCRExtractionError, match="no text"):
            await ImageTextExtractor().extract(b"\xff\xd8")


@pytest.mark.asyncio
async def test_image_timeout_maps_to_api_timeout():
    with patch("httpx.AsyncClient.post", side_effect=httpx.ReadTimeout("slow")):
        with pytest.raises(APITimeoutError):
            await ImageTextExtractor(timeout=5).extract(b"\xff\xd8")


@pytest.mark.asyncio
async def test_image_http_error_status_maps_to_ocr_error():
    request = httpx.Request("POST", "https://api.ocr.space/parse/image")
    response = httpx.Response(503, request=request)

    with patch("httpx.AsyncClient.post", return_value=response):
        with pytest.raises(OCRExtractionError, match="HTTP 503"):
            await ImageTextExtractor().extract(b"\xff\xd8")
