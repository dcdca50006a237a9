import base64
import json
import logging
from typing import Any, Dict, Optional

import httpx

from . import config

logger = logging.getLogger(__name__)

SNAPSHOT_PROMPT = (
    "You are reviewing a webcam still taken while a candidate is working on a timed "
    "coding assessment. Decide whether the image suggests a rule violation: no person "
    "visible, more than one person, a phone or second screen in use, or the candidate "
    "reading from notes. Respond with JSON only: "
    '{"suspicious": true|false, "reason": "<one short sentence>"}'
)


def parse_observation(content: Optional[str]) -> Dict[str, Any]:
    if not content:
        raise ValueError("Empty response from scoring oracle")
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("Scoring oracle returned a non-object JSON value")
    return {
        "suspicious": bool(data.get("suspicious", False)),
        "reason": str(data.get("reason", "")),
    }


class ScoringOracle:
    provider: str = "base"

    async def observe_snapshot(self, image: bytes) -> Dict[str, Any]:
        raise NotImplementedError


class OpenAIOracle(ScoringOracle):
    provider = "openai"

    def __init__(self, api_key: Optional[str], model: str) -> None:
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def observe_snapshot(self, image: bytes) -> Dict[str, Any]:
        data_url = "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")
        response = await self.client.chat.completions.create(
            model=self.model,
            temperature=0.3,
            response_format={"type": "json_object"},
            messages=[{
                "role": "user",
                "content": [
                    {"type": "text", "text": SNAPSHOT_PROMPT},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            }],
        )
        return parse_observation(response.choices[0].message.content)


class OllamaOracle(ScoringOracle):
    provider = "ollama"

    def __init__(self, base_url: str, model: str, timeout: float = 120.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def observe_snapshot(self, image: bytes) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "stream": False,
                    "format": "json",
                    "options": {"temperature": 0.3},
                    "messages": [{
                        "role": "user",
                        "content": SNAPSHOT_PROMPT,
                        "images": [base64.b64encode(image).decode("ascii")],
                    }],
                },
            )
            response.raise_for_status()
        return parse_observation(response.json()["message"]["content"])


def get_oracle() -> Optional[ScoringOracle]:
    if not config.SNAPSHOT_REVIEW:
        return None
    if config.LLM_PROVIDER == "ollama":
        return OllamaOracle(config.OLLAMA_BASE_URL, config.OLLAMA_MODEL)
    if not config.OPENAI_API_KEY:
        logger.warning("SNAPSHOT_REVIEW is enabled but OPENAI_API_KEY is not set; reviews disabled")
        return None
    return OpenAIOracle(config.OPENAI_API_KEY, config.OPENAI_MODEL)
