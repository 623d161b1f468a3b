import base64
import logging
import os

from google import genai
from google.genai import types

from dinodivision.core.errors import ImageGenerationError
from dinodivision.services.image_cache import GeneratedImage

logger = logging.getLogger("dinodivision.image_provider")

PROMPT_TEMPLATE = (
    "Create a cinematic, photorealistic image of a {name}. "
    "Style it like a Jurassic Park and Jurassic World movie still. "
    "Show the whole animal in a lush prehistoric landscape with dramatic lighting. "
    "No text, captions, logos or watermarks."
)


def build_image_prompt(subject_name: str) -> str:
    name = " ".join(subject_name.split())
    if not name:
        raise ValueError("subject_name must be non-empty")
    return PROMPT_TEMPLATE.format(name=name)


class GeminiImageProvider:
    """
    Async image generator backed by google-genai.

    Instances are callables matching the cache's generate(subject_name)
    contract and return GeneratedImage(mime_type, bytes_base64).
    """

    def __init__(self, api_key: str, model: str, client: genai.Client | None = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ImageGenerationError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def __call__(self, subject_name: str) -> GeneratedImage:
        prompt = build_image_prompt(subject_name)
        client = self._get_client()

        if os.environ.get("DEBUG_LLM_PROMPTS", "").lower() in ("1", "true"):
            logger.warning("[image_provider] model=%s prompt=%s", self.model, prompt)

        config = types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"])
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            raise ImageGenerationError(f"Gemini request failed: {e}") from e

        image = extract_inline_image(response)
        if image is None:
            raise ImageGenerationError(
                f"Gemini returned no inline image for {subject_name!r}"
            )
        return image


def extract_inline_image(response) -> GeneratedImage | None:
    """First inline image part of a generate_content response, base64-encoded."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None or not inline.data:
                continue
            mime_type = inline.mime_type or "image/png"
            if not mime_type.startswith("image/"):
                continue
            data = inline.data
            if isinstance(data, str):
                encoded = data
            else:
                encoded = base64.b64encode(data).decode("ascii")
            return GeneratedImage(mime_type=mime_type, bytes_base64=encoded)
    return None
