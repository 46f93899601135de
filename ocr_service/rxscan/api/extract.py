"""
extract.py (API)

Prescription text extraction endpoints.

What this file does:
- Accepts a prescription image (base64 JSON or file upload)
- Checks the inference provider is configured
- Calls VisionExtractionService to extract and add OCR noise
- Returns the structured result as JSON

What this file does NOT do:
- Save images or results (storage is handled by the caller)
- Parse model output or corrupt text (delegated to services)

Endpoints:
- POST /api/extract-text        - JSON body {"image": "<base64>"}
- POST /api/extract-text/upload - multipart/form-data with a file

Flow:
Client sends image → This API → VisionExtractionService → noisy JSON
"""

import base64
import io
import logging

from fastapi import APIRouter, UploadFile, File, HTTPException, status
from PIL import Image, UnidentifiedImageError

from rxscan import config
from rxscan.schemas.extraction import ExtractedRecord, ExtractTextRequest, HTTPErrorResponse
from rxscan.services.vision import PROVIDER_NAMES, VisionExtractionService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

ALLOWED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

ERROR_RESPONSES = {
    400: {"model": HTTPErrorResponse},
    500: {"model": HTTPErrorResponse},
}


def _error(status_code: int, error: str, details: str = None) -> HTTPException:
    """Build an HTTPException whose detail is the structured error body."""
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return HTTPException(status_code=status_code, detail=body)


def get_extraction_service() -> VisionExtractionService:
    """
    Create the extraction service from configuration.

    Raises HTTP 500 if the provider's API key is missing.
    """
    provider = config.INFERENCE_PROVIDER
    api_key = config.get_api_key(provider)

    if not api_key:
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"{PROVIDER_NAMES.get(provider, provider)} API key not configured"
        )

    try:
        return VisionExtractionService(
            api_key=api_key,
            provider=provider,
            model=config.get_model(provider),
            timeout=config.INFERENCE_TIMEOUT
        )
    except ValueError as error:
        # Unknown provider name in configuration
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(error))


def _run_extraction(image_base64: str, mime_type: str) -> ExtractedRecord:
    """Shared pipeline for both endpoints."""

    # Step 1: Build the service (HTTP 500 if the key is missing)
    service = get_extraction_service()

    try:
        # Step 2: Extract, parse and add OCR noise
        return service.extract(image_base64, mime_type=mime_type)

    except ValueError as error:
        # Bad input from the client (e.g. empty image after data: prefix)
        raise _error(status.HTTP_400_BAD_REQUEST, str(error))

    except RuntimeError as error:
        # Upstream failure: network error, non-success status, bad body
        # The service keeps these messages free of URLs and keys
        logger.error(f"Error extracting text: {error}")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to extract text from image",
            str(error)
        )

    except Exception as error:
        # Unexpected error, its message is not passed to the client
        logger.exception("Unexpected error extracting text")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to extract text from image",
            type(error).__name__
        )


@router.post(
    "/extract-text",
    response_model=ExtractedRecord,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    responses=ERROR_RESPONSES,
    summary="Extract OCR-style text from a prescription image",
    description=(
        "Send a base64 encoded prescription image and receive the raw text, "
        "medications, doctor name and date, with realistic OCR errors applied."
    )
)
async def extract_text(request: ExtractTextRequest):
    """
    Extract prescription data from a base64 image.

    Errors:
    - 400 Bad Request: no image in the body
    - 500 Internal Server Error: provider not configured or call failed
    """

    # Step 1: Validate that an image was sent
    # The schema allows a missing image so this 400 body is ours, not a 422
    if not request.image or not request.image.strip():
        raise _error(status.HTTP_400_BAD_REQUEST, "No image provided")

    # Step 2: Run the shared extraction pipeline
    return _run_extraction(request.image, request.mime_type)


@router.post(
    "/extract-text/upload",
    response_model=ExtractedRecord,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    responses=ERROR_RESPONSES,
    summary="Extract OCR-style text from an uploaded prescription image",
    description="Upload a PNG, JPG, JPEG or WEBP prescription image."
)
async def extract_text_upload(file: UploadFile = File(...)):
    """
    Upload variant of /extract-text.

    Step-by-step process:
    1. Validate filename and extension
    2. Read the file into memory
    3. Detect the real image type with Pillow
    4. Base64 encode and run the normal extraction pipeline
    """

    # Step 1: Validate that a filename exists
    if not file.filename:
        raise _error(status.HTTP_400_BAD_REQUEST, "Image file is required")

    # Step 2: Only image types the inference endpoints accept
    if not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Unsupported file type. Only PNG, JPG, JPEG and WEBP are allowed."
        )

    # Step 3: Read the file content into memory
    file_bytes = await file.read()

    # Step 4: Ensure the uploaded file is not empty
    if not file_bytes:
        raise _error(status.HTTP_400_BAD_REQUEST, "Uploaded image is empty")

    # Step 5: Detect the real image type, the extension may lie
    try:
        with Image.open(io.BytesIO(file_bytes)) as image:
            mime_type = Image.MIME.get(image.format, "image/png")
    except UnidentifiedImageError:
        raise _error(status.HTTP_400_BAD_REQUEST, "Uploaded file is not a readable image")

    # Step 6: Base64 encode and run the shared pipeline
    image_base64 = base64.b64encode(file_bytes).decode("utf-8")

    return _run_extraction(image_base64, mime_type)
