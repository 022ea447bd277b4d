import base64
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from app.features.audit.schemas.audit import CapturedImage
from app.features.audit.utils.prompts import SYSTEM_PROMPT
from app.platform.config import settings
from app.platform.exceptions import InferenceError
from app.platform.logger import get_logger

logger = get_logger(__name__)


class InferenceClient:
    """
    One vision completion per audit job.

    Talks to any OpenAI-compatible endpoint (Groq by default). Failures are
    never retried here: a full multi-image call is too slow and too
    expensive to repeat inside a request.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        if client is None and settings.INFERENCE_API_KEY:
            client = AsyncOpenAI(
                base_url=settings.INFERENCE_BASE_URL,
                api_key=settings.INFERENCE_API_KEY,
                timeout=settings.INFERENCE_TIMEOUT_SECONDS,
                max_retries=0,
            )
        self.client = client
        self.model = model or settings.INFERENCE_MODEL

    @staticmethod
    def build_user_content(images: List[CapturedImage], instructions: str) -> list:
        content = [{"type": "text", "text": instructions}]
        for image in images:
            encoded = base64.b64encode(image.data).decode("ascii")
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"},
            })
        return content

    async def infer(self, images: List[CapturedImage], instructions: str, max_tokens: int) -> str:
        """
        Send every image plus the instructions, return the raw model text.

        Raises:
            InferenceError: On missing configuration, provider errors,
                timeouts or an empty completion
        """
        if self.client is None:
            raise InferenceError("Inference API key missing or client unavailable")

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_user_content(images, instructions)},
                ],
                temperature=settings.INFERENCE_TEMPERATURE,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as e:
            logger.error(f"Inference provider returned {e.status_code}: {e}")
            if e.status_code == 429:
                raise InferenceError("AI quota exceeded. Please wait and try again.")
            if e.status_code == 413 or "too large" in str(e).lower():
                raise InferenceError("The analysis payload is too large. Try scanning fewer pages.")
            raise InferenceError(f"Model inference failed: {e}")
        except openai.APIError as e:
            # Connection errors and timeouts
            logger.error(f"Inference call failed: {e}")
            raise InferenceError(f"Model inference failed: {e}")

        raw_text = ""
        if completion.choices:
            raw_text = completion.choices[0].message.content or ""
        if not raw_text.strip():
            raise InferenceError("Model returned an empty response")

        logger.info(f"Inference complete ({len(images)} images, {len(raw_text)} chars, max_tokens={max_tokens})")
        logger.debug(f"Raw inference output: {raw_text}")
        return raw_text
