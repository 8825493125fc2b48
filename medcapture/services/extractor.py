import logging

from medcapture.config import Settings
from medcapture.errors import AIProcessingError, ConfigurationError, UnsupportedMediaTypeError
from medcapture.models.extraction import ExtractedFact
from medcapture.services.llm import Attachment, LLMClient
from medcapture.services.normalizer import normalize_candidates
from medcapture.services.response_recovery import recover

logger = logging.getLogger(__name__)

PROMPT_VERSION = "2024-06-openehr-v1"

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/avi",
    "video/mov",
)

EXTRACTION_PROMPT = """You are a medical data extraction AI that prepares records for an OpenEHR clinical data repository.
Analyze the provided content and extract every discrete piece of medical information.

Classify each data point as exactly one of these types:

1. lab_result - blood tests, urine tests, imaging results, pathology reports
2. diagnosis - medical conditions, diseases, symptoms, clinical assessments
3. medication - prescriptions, dosages, drug names, administration instructions
4. vital_signs - blood pressure, heart rate, temperature, weight, height, oxygen saturation
5. clinical_note - clinician observations, patient history, treatment plans

For each data point return an object with EXACTLY this structure:
{
  "type": "lab_result|diagnosis|medication|vital_signs|clinical_note",
  "category": "specific medical category (e.g. 'blood_chemistry', 'cardiovascular', 'prescription')",
  "data": {
    "name": "specific medical term or test name",
    "value": "measured value, description, or finding",
    "units": "measurement units if applicable (e.g. 'mg/dL', 'mmHg', 'bpm')",
    "date": "date in ISO format YYYY-MM-DD if mentioned",
    "status": "status if applicable (e.g. 'active', 'resolved', 'prescribed')",
    "reference_range": "normal range if provided (e.g. '70-100 mg/dL')",
    "interpretation": "clinical interpretation if stated (e.g. 'high', 'low', 'normal')",
    "notes": "additional clinical context or instructions"
  },
  "confidence": 0.0-1.0,
  "source_text": "exact text excerpt that contains this medical information"
}

Confidence rules:
- 0.8 or higher: clear medical data with explicit values and units
- 0.6 to 0.8: clinical observations without precise values
- 0.4 to 0.6: implied or uncertain medical information

Extraction rules:
- Only extract genuine medical information.
- Include values, units and reference ranges whenever they are available.
- Expand common abbreviations (BP = blood pressure, HR = heart rate).
- For medications include dosage, frequency and route if mentioned.

Return ONLY a valid JSON array of these objects. If no medical data is found, return [].

Examples:
- "BP 140/90 mmHg" -> vital_signs
- "Hemoglobin 12.5 g/dL (normal 12-16)" -> lab_result with reference_range
- "Diagnosed with Type 2 diabetes" -> diagnosis
- "Prescribed metformin 500mg twice daily" -> medication with dosage and frequency
- "Patient reports chest pain" -> clinical_note
"""

_MEDIA_LEAD_IN = {
    "image/": (
        "Extract medical information from this medical image "
        "(lab results, prescriptions, medical reports, etc.):"
    ),
    "video/": (
        "Extract medical information from this medical video "
        "(patient consultations, procedure recordings, medical presentations, etc.):"
    ),
}


def _describe_failure(exc: Exception) -> str:
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if "api_key" in lowered or "api key" in lowered or "authentication" in lowered:
        return f"invalid or missing API key for the configured provider ({message})"
    return message


class Extractor:
    """Runs one model call per input and returns normalized facts."""

    def __init__(self, settings: Settings, client: LLMClient | None = None) -> None:
        self.settings = settings
        self.client = client or LLMClient(settings)
        if not self.client.available():
            raise ConfigurationError(
                "No generative model credential configured. "
                "Set GEMINI_API_KEY, ANTHROPIC_API_KEY or OPENAI_API_KEY."
            )

    async def extract_from_text(self, text: str) -> list[ExtractedFact]:
        if not text or not text.strip():
            raise ValueError("text must be non-empty")

        logger.info("AI processing text input (%d characters)", len(text))
        prompt = f"{EXTRACTION_PROMPT}\n\nMedical text to analyze:\n{text}"
        raw = await self._complete(prompt)
        return self._parse(raw)

    async def extract_from_file(
        self,
        data: bytes,
        mime_type: str,
        filename: str | None = None,
    ) -> list[ExtractedFact]:
        if not data:
            raise ValueError("file payload must be non-empty")
        if mime_type not in ALLOWED_MIME_TYPES:
            raise UnsupportedMediaTypeError(
                f"Unsupported file type: {mime_type}. "
                f"Supported types: {', '.join(ALLOWED_MIME_TYPES)}"
            )
        if not self.client.supports_media(mime_type):
            raise UnsupportedMediaTypeError(
                f"Provider {self.client.provider} cannot process {mime_type} files"
            )

        logger.info("AI processing file %s (%s, %d bytes)", filename or "<upload>", mime_type, len(data))
        lead_in = _MEDIA_LEAD_IN["video/" if mime_type.startswith("video/") else "image/"]
        prompt = f"{EXTRACTION_PROMPT}\n\n{lead_in}"
        raw = await self._complete(prompt, Attachment(data=data, mime_type=mime_type))
        return self._parse(raw)

    async def _complete(self, prompt: str, attachment: Attachment | None = None) -> str:
        try:
            return await self.client.complete(prompt, attachment=attachment)
        except UnsupportedMediaTypeError:
            raise
        except Exception as exc:
            logger.error("Model call failed (%s): %s", self.client.provider, exc)
            raise AIProcessingError(f"AI processing failed: {_describe_failure(exc)}") from exc

    def _parse(self, raw: str) -> list[ExtractedFact]:
        logger.info("AI response length: %d characters", len(raw or ""))
        facts = normalize_candidates(recover(raw or ""))
        logger.info("Parsed %d valid medical fact(s) from AI response", len(facts))
        return facts
