"""
vision.py

Sends a prescription image to a multimodal inference endpoint
and turns the answer into an ExtractedRecord.

Supported providers:
1. Gemini (default) - REST generateContent call via requests
2. OpenAI - chat completions with an image_url content part

The model is asked to behave like a basic OCR engine and return
JSON. Whatever comes back is then run through the OCR noise
injector, because the model alone is always too clean.

This file:
- Makes exactly ONE request per extraction (no retries)
- Does NOT save images or results anywhere
- Does NOT contain FastAPI routes
"""

import json
import logging
from typing import Optional

import requests
from openai import OpenAI

from rxscan.schemas.extraction import ExtractedRecord
from rxscan.services.noise import OCRNoiseInjector

# Setup logging
logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# Provider id -> name used in messages
PROVIDER_NAMES = {"gemini": "Gemini", "openai": "OpenAI"}
SUPPORTED_PROVIDERS = tuple(PROVIDER_NAMES)

OCR_SIMULATION_PROMPT = """You are simulating a basic OCR model output. Extract text from this prescription image with typical OCR limitations and errors.

CRITICAL REQUIREMENTS:
- ONLY extract English text, ignore any other languages completely
- Make the output look like raw OCR model results, not polished text
- Include typical OCR errors: character misrecognition, spacing issues, line break problems
- Don't be too smart about context - OCR models are literal
- Include some garbled text and unclear sections
- Make medication names sometimes partially incorrect
- Don't format nicely - keep it raw and messy like real OCR

Provide the response in this exact JSON format:
{
  "text": "raw OCR extracted text with errors and formatting issues",
  "medications": [
    {
      "name": "medication name with possible OCR errors",
      "dosage": "dosage with possible number/letter confusion",
      "frequency": "frequency info (may be unclear)",
      "duration": "duration (may be incomplete)",
      "instructions": "instructions with OCR errors"
    }
  ],
  "doctorName": "doctor name with possible errors",
  "prescriptionDate": "date if visible (may have format issues)"
}

OCR Model Behavior:
- Confuse similar characters (O/0, I/1, S/5, B/8, etc.)
- Miss spaces between words sometimes
- Break words across lines incorrectly
- Have trouble with handwritten text
- Make 10-20% character recognition errors
- Don't understand context - just recognize characters
- Sometimes miss entire words or lines
- Struggle with poor image quality areas"""


def strip_data_url(image: str) -> str:
    """
    Remove a "data:image/...;base64," prefix if the client sent one.

    Browsers produce that prefix with FileReader.readAsDataURL,
    the inference endpoints want only the base64 payload.
    """
    if image.startswith("data:") and "," in image:
        return image.split(",", 1)[1]
    return image


def parse_model_output(raw_text: str) -> ExtractedRecord:
    """
    Turn the model's answer into an ExtractedRecord.

    What happens here:
    1. Take everything from the first "{" to the last "}"
    2. Parse it as JSON
    3. Accept it only if it has a non-empty "text" and a
       "medications" list
    4. Otherwise fall back to the raw answer as the full text
       with no medications

    Never raises: a bad answer still produces a record.
    """
    # Step 1: Cut out the JSON block (the model may wrap it in prose or fences)
    start = raw_text.find("{")
    end = raw_text.rfind("}")

    if start != -1 and end > start:
        try:
            # Step 2: Parse and check the shape
            parsed = json.loads(raw_text[start:end + 1])

            if (
                isinstance(parsed, dict)
                and parsed.get("text")
                and isinstance(parsed.get("medications"), list)
            ):
                return ExtractedRecord.model_validate(parsed)

        except ValueError as e:
            # json.JSONDecodeError and pydantic's ValidationError are both ValueErrors
            logger.warning(f"Failed to parse JSON response: {e}")

    logger.warning("Model response was not structured, using raw text")

    return ExtractedRecord(
        text=raw_text,
        medications=[],
        doctor_name="",
        prescription_date=""
    )


class VisionExtractionService:
    """
    VisionExtractionService is responsible for one job only:
    sending a prescription image to the inference endpoint and
    returning a noisy ExtractedRecord.
    """

    def __init__(
        self,
        api_key: str,
        provider: str = "gemini",
        model: Optional[str] = None,
        timeout: float = 60,
        noise: Optional[OCRNoiseInjector] = None
    ):
        """
        Initialize vision extraction service.

        Parameters:
        - api_key: key for the selected provider (required)
        - provider: "gemini" or "openai"
        - model: model name, defaults depend on provider
        - timeout: seconds to wait for the single request
        - noise: injector to apply, defaults to standard settings
        """

        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported inference provider '{provider}'. "
                f"Use one of: {', '.join(SUPPORTED_PROVIDERS)}"
            )

        if not api_key:
            raise ValueError(f"{PROVIDER_NAMES[provider]} API key not configured")

        self.provider = provider
        self.api_key = api_key
        self.timeout = timeout
        self.noise = noise or OCRNoiseInjector()

        if provider == "openai":
            self.model = model or "gpt-4.1"
            self.openai_client = OpenAI(api_key=api_key, timeout=timeout)
        else:
            self.model = model or "gemini-1.5-flash"
            self.openai_client = None

        logger.info(f"Vision extraction using {self.provider} ({self.model})")

    def extract(self, image_base64: str, mime_type: str = "image/png") -> ExtractedRecord:
        """
        Main entry point used by the API routes.

        What happens here:
        1. Send the image and prompt to the provider
        2. Parse the answer (structured JSON or raw fallback)
        3. Apply OCR noise to the record
        4. Return the noisy record

        Raises:
        - ValueError if the image is empty
        - RuntimeError if the upstream call fails
        """

        # Step 1: Drop a data: URL prefix and check something is left
        image_base64 = strip_data_url(image_base64.strip())
        if not image_base64:
            raise ValueError("No image provided")

        # Step 2: One request to the configured provider
        if self.provider == "openai":
            raw_text = self._call_openai(image_base64, mime_type)
        else:
            raw_text = self._call_gemini(image_base64, mime_type)

        # Step 3: Structured JSON or raw-text fallback
        record = parse_model_output(raw_text)

        logger.info(
            f"Extracted {len(record.medications)} medication(s), "
            f"{len(record.text)} characters of text"
        )

        # Step 4: Make it look like real OCR output
        return self.noise.apply_to_record(record)

    def _call_gemini(self, image_base64: str, mime_type: str) -> str:
        """
        Call the Gemini generateContent REST endpoint.

        Returns the text of the first candidate.
        """

        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": OCR_SIMULATION_PROMPT},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": image_base64
                            }
                        }
                    ]
                }
            ],
            "generationConfig": {
                # Higher temperature for more variation
                "temperature": 0.7,
                "topK": 10,
                "topP": 0.95,
                "maxOutputTokens": 2048
            }
        }

        # Step 1: Send the request
        # The key goes in a header so it never appears in a URL,
        # and requests puts the URL into its exception messages
        try:
            response = requests.post(
                url,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self.api_key
                },
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            # Only the exception type is reported, the message holds the URL
            logger.error(f"Gemini request failed: {type(e).__name__}")
            raise RuntimeError(f"Gemini request failed: {type(e).__name__}") from e

        # Step 2: Reject non-success status codes
        if not response.ok:
            logger.error(f"Gemini API error: {response.status_code} {response.text[:500]}")
            raise RuntimeError(f"Gemini API error: {response.status_code}")

        # Step 3: Decode the body (a proxy error page is not JSON)
        try:
            result = response.json()
        except ValueError as e:
            logger.error(f"Gemini returned a non-JSON body: {response.text[:500]}")
            raise RuntimeError("Unexpected response format from Gemini API") from e

        if not isinstance(result, dict):
            raise RuntimeError("Unexpected response format from Gemini API")

        # Step 4: Take the text of the first candidate
        candidates = result.get("candidates") or []
        if not candidates:
            raise RuntimeError("No response from Gemini API")

        try:
            return candidates[0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise RuntimeError("Unexpected response format from Gemini API") from e

    def _call_openai(self, image_base64: str, mime_type: str) -> str:
        """
        Call the OpenAI chat completions endpoint with the image.

        Returns the message content of the first choice.
        """

        try:
            response = self.openai_client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "text",
                                "text": OCR_SIMULATION_PROMPT
                            },
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:{mime_type};base64,{image_base64}"
                                }
                            }
                        ]
                    }
                ],
                temperature=0.7,
                max_tokens=2048
            )
        except Exception as e:
            logger.error(f"OpenAI Vision API failed: {e}")
            raise RuntimeError(f"OpenAI Vision API failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise RuntimeError("No response from OpenAI API")

        return response.choices[0].message.content.strip()
