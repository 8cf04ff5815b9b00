from typing import Any, Dict

import openai

from metri.core.errors import MetriError
from metri.core.log import get_logger

logger = get_logger("summarizer")

SYSTEM_PROMPT = (
    "You are a professional meeting assistant. Summarize the following meeting transcript into "
    "concise bullet points, highlighting key decisions and action items. Provide the output in "
    "both English and Khmer if both languages are present."
)


class SummaryFailed(MetriError):
    client_message = "Summarization failed"


class Summarizer:
    """Bullet-point meeting summary via OpenAI chat completions."""

    def __init__(self, api_key: str, model: str = "gpt-4o"):
        self._client = openai.OpenAI(api_key=api_key)
        self._model = model

    def summarize(self, session: Dict[str, Any]) -> str:
        full_text = "\n".join(e.get("text", "") for e in session.get("entries") or [])
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Transcript:\n{full_text}"},
                ],
            )
        except openai.OpenAIError as e:
            logger.error("summarize.failed model=%s err=%s", self._model, e)
            raise SummaryFailed(str(e)) from e
        return response.choices[0].message.content or ""
