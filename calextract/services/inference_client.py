import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from http.client import HTTPException, RemoteDisconnected
from typing import Any
from urllib import error, parse, request

from calextract.core.config import Settings

_TOO_LARGE_MARKERS = (
    "context_length_exceeded",
    "maximum context length",
    "too large",
    "too long",
    "exceeds the maximum",
)


class InferenceError(Exception):
    pass


class RateLimitedError(InferenceError):
    pass


class RequestTooLargeError(InferenceError):
    pass


class InferenceUnavailableError(InferenceError):
    pass


@dataclass(frozen=True)
class InferencePrompt:
    instructions: str
    content: str


class InferenceClient(ABC):
    @abstractmethod
    def infer(self, prompt: InferencePrompt) -> str:
        """Return the raw JSON text produced for *prompt*."""
        raise NotImplementedError


class StaticInferenceClient(InferenceClient):
    """Returns a fixed reply; records the prompts it was given."""

    def __init__(self, reply: str | Mapping[str, Any]) -> None:
        self.reply = reply if isinstance(reply, str) else json.dumps(reply)
        self.prompts: list[InferencePrompt] = []

    def infer(self, prompt: InferencePrompt) -> str:
        self.prompts.append(prompt)
        return self.reply


class _HttpInferenceClient(InferenceClient):
    provider_name = "inference"

    def __init__(self, *, api_key: str, model: str, timeout_seconds: float) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds

    def _post_json(
        self,
        endpoint: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        req = request.Request(
            endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", **headers},
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise InferenceUnavailableError(f"{self.provider_name} request timed out.") from exc
        except RemoteDisconnected as exc:
            raise InferenceUnavailableError(
                f"{self.provider_name} connection was closed before sending a response.",
            ) from exc
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise _classify_http_error(self.provider_name, exc.code, body) from exc
        except error.URLError as exc:
            raise InferenceUnavailableError(
                f"{self.provider_name} connection error: {exc.reason}",
            ) from exc
        except (HTTPException, OSError) as exc:
            raise InferenceUnavailableError(
                f"{self.provider_name} connection error: {exc}",
            ) from exc

        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InferenceUnavailableError(f"{self.provider_name} returned invalid JSON.") from exc

        if not isinstance(parsed_body, dict):
            raise InferenceUnavailableError(f"{self.provider_name} response is not a JSON object.")
        return parsed_body


class GeminiInferenceClient(_HttpInferenceClient):
    provider_name = "Gemini API"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 30.0,
        api_base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        super().__init__(api_key=api_key, model=model, timeout_seconds=timeout_seconds)
        self.api_base_url = api_base_url.rstrip("/")

    def infer(self, prompt: InferencePrompt) -> str:
        query = parse.urlencode({"key": self.api_key})
        endpoint = f"{self.api_base_url}/models/{self.model}:generateContent?{query}"
        payload = {
            "system_instruction": {"parts": [{"text": prompt.instructions}]},
            "contents": [{"role": "user", "parts": [{"text": prompt.content}]}],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 1000,
                "responseMimeType": "application/json",
            },
        }
        response_payload = self._post_json(endpoint, payload, headers={})
        return self._extract_text_response(response_payload)

    def _extract_text_response(self, payload: Mapping[str, Any]) -> str:
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise InferenceUnavailableError("Gemini API response missing candidates.")

        first_candidate = candidates[0]
        if not isinstance(first_candidate, Mapping):
            raise InferenceUnavailableError("Gemini API response candidate is invalid.")

        content = first_candidate.get("content")
        if not isinstance(content, Mapping):
            raise InferenceUnavailableError("Gemini API response missing content.")

        parts = content.get("parts")
        if not isinstance(parts, list):
            raise InferenceUnavailableError("Gemini API response missing content parts.")

        chunks: list[str] = []
        for part in parts:
            if not isinstance(part, Mapping):
                continue
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                chunks.append(text.strip())

        if not chunks:
            raise InferenceUnavailableError("Gemini API response did not include text output.")
        return "\n".join(chunks)


class OpenAIInferenceClient(_HttpInferenceClient):
    provider_name = "OpenAI API"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        timeout_seconds: float = 30.0,
        api_base_url: str = "https://api.openai.com/v1",
    ) -> None:
        super().__init__(api_key=api_key, model=model, timeout_seconds=timeout_seconds)
        self.api_base_url = api_base_url.rstrip("/")

    def infer(self, prompt: InferencePrompt) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.instructions},
                {"role": "user", "content": prompt.content},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.1,
            "max_tokens": 1000,
        }
        response_payload = self._post_json(
            f"{self.api_base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return self._extract_text_response(response_payload)

    def _extract_text_response(self, payload: Mapping[str, Any]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise InferenceUnavailableError("OpenAI API response missing choices.")

        first_choice = choices[0]
        if not isinstance(first_choice, Mapping):
            raise InferenceUnavailableError("OpenAI API response choice is invalid.")

        message = first_choice.get("message")
        if not isinstance(message, Mapping):
            raise InferenceUnavailableError("OpenAI API response missing message.")

        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise InferenceUnavailableError("OpenAI API response did not include text output.")
        return content.strip()


def create_inference_client(settings: Settings) -> InferenceClient | None:
    if settings.inference_provider == "gemini":
        if not settings.gemini_api_key.strip():
            return None
        return GeminiInferenceClient(
            api_key=settings.gemini_api_key.strip(),
            model=settings.gemini_model,
            timeout_seconds=settings.gemini_api_timeout_seconds,
        )
    if settings.inference_provider == "openai":
        if not settings.openai_api_key.strip():
            return None
        return OpenAIInferenceClient(
            api_key=settings.openai_api_key.strip(),
            model=settings.openai_model,
            timeout_seconds=settings.openai_api_timeout_seconds,
        )
    raise ValueError(f"Unsupported inference provider: {settings.inference_provider}")


def _classify_http_error(provider_name: str, status_code: int, body: str) -> InferenceError:
    message = f"{provider_name} HTTP {status_code}: {body or 'empty response body'}"
    if status_code == 429:
        return RateLimitedError(message)
    lowered_body = body.lower()
    if status_code == 413 or (
        status_code == 400 and any(marker in lowered_body for marker in _TOO_LARGE_MARKERS)
    ):
        return RequestTooLargeError(message)
    return InferenceUnavailableError(message)
