import base64

import httpx
import openai

from kpi_worker.parsing.models import PageImage
from kpi_worker.vision.base import BaseImageDescriber
from kpi_worker.vision.exceptions import ImageDescriptionError

_PROMPT = (
    "Describe this image from a financial report. Transcribe every number, "
    "label, unit and currency shown in charts or tables. Answer in plain text."
)


class OpenAIImageDescriber(BaseImageDescriber):
    """Image describer built on an OpenAI vision-capable chat model."""

    def __init__(self, *, api_key: str, model: str, timeout_seconds: int) -> None:
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout_seconds)
        self._model = model

    def describe(self, image: PageImage) -> str:
        encoded = base64.b64encode(image.data).decode("ascii")
        data_url = f"data:image/{image.extension};base64,{encoded}"
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                temperature=0.0,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": _PROMPT},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    }
                ],
            )
        except (openai.APIError, httpx.HTTPError) as exc:
            raise ImageDescriptionError(f"Vision provider error: {exc}") from exc

        if not response.choices or not response.choices[0].message.content:
            raise ImageDescriptionError("Vision provider returned empty response")
        return response.choices[0].message.content.strip()
