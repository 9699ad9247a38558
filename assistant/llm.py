import json
import logging
import re
from typing import Optional, Type, TypeVar

from groq import Groq
from openai import OpenAI
from pydantic import BaseModel, ValidationError as SchemaError

from errors import AIServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

JSON_SYSTEM_PROMPT = (
    "You are MediTrack's health assistant. Respond with a single JSON object only, "
    "no prose and no markdown, matching this JSON schema:\n{schema}"
)


def parse_object(text: str, schema: Type[T]) -> T:
    """Validate model output against `schema`, tolerating a ```json fence."""
    cleaned = (text or "").strip()
    m = FENCE_RE.match(cleaned)
    if m:
        cleaned = m.group(1)
    try:
        return schema.model_validate_json(cleaned)
    except SchemaError as e:
        logger.warning("Model output failed %s validation: %s", schema.__name__, e)
        raise AIServiceError(f"Model returned an invalid {schema.__name__}") from e


class AIClient:
    """Chat completions with Groq preferred and OpenAI as fallback."""

    def __init__(self, groq_client=None, openai_client=None,
                 groq_model="llama-3.3-70b-versatile", openai_model="gpt-4o-mini",
                 temperature=0.7, max_tokens=1000):
        self.groq_client = groq_client
        self.openai_client = openai_client
        self.groq_model = groq_model
        self.openai_model = openai_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config) -> "AIClient":
        groq_client = openai_client = None
        if config.get("GROQ_API_KEY"):
            groq_client = Groq(api_key=config["GROQ_API_KEY"])
            logger.info("Groq configured for AI features.")
        if config.get("OPENAI_API_KEY"):
            openai_client = OpenAI(api_key=config["OPENAI_API_KEY"])
            logger.info("OpenAI configured as AI fallback.")
        if not groq_client and not openai_client:
            logger.warning("No AI provider configured (GROQ or OpenAI). AI features will be unavailable.")
        return cls(
            groq_client=groq_client,
            openai_client=openai_client,
            groq_model=config.get("GROQ_MODEL", "llama-3.3-70b-versatile"),
            openai_model=config.get("OPENAI_MODEL", "gpt-4o-mini"),
            temperature=float(config.get("AI_TEMPERATURE", 0.7)),
            max_tokens=int(config.get("AI_MAX_TOKENS", 1000)),
        )

    @property
    def available(self) -> bool:
        return bool(self.groq_client or self.openai_client)

    def _create(self, client, model, messages, max_tokens, json_mode) -> str:
        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content
        if not content:
            raise AIServiceError("Model returned an empty response")
        return content.strip()

    def chat(self, user_message: str, system_prompt: Optional[str] = None,
             max_tokens: Optional[int] = None, json_mode: bool = False) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        providers = [
            ("Groq", self.groq_client, self.groq_model),
            ("OpenAI", self.openai_client, self.openai_model),
        ]
        last_error = None
        for name, client, model in providers:
            if client is None:
                continue
            try:
                return self._create(client, model, messages, max_tokens, json_mode)
            except Exception as e:
                logger.exception("%s chat error", name)
                last_error = e
        if last_error is None:
            raise AIServiceError("No AI provider configured (set GROQ_API_KEY or OPENAI_API_KEY).")
        raise AIServiceError(f"AI provider error: {last_error}") from last_error

    def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        return self.chat(prompt, max_tokens=max_tokens)

    def generate_object(self, prompt: str, schema: Type[T]) -> T:
        system_prompt = JSON_SYSTEM_PROMPT.format(schema=json.dumps(schema.model_json_schema()))
        text = self.chat(prompt, system_prompt=system_prompt, json_mode=True)
        return parse_object(text, schema)
