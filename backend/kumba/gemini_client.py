from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional
from .settings import settings


logger = logging.getLogger(__name__)


class LLMUnavailable(RuntimeError):
	"""Neither Gemini nor the OpenRouter fallback produced text."""


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		timeout = timeout or settings.llm_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout)
		self._openrouter_api_key = settings.openrouter_api_key
		self._fallback_client: Optional[httpx.AsyncClient] = (
			httpx.AsyncClient(timeout=timeout) if self._openrouter_api_key else None
		)
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}

	async def generate(
		self,
		prompt: str,
		*,
		system: Optional[str] = None,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
		json_output: bool = False,
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		if system:
			payload["systemInstruction"] = {"parts": [{"text": system}]}
		generation: Dict[str, Any] = {}
		if temperature is not None:
			generation["temperature"] = temperature
		if max_tokens is not None:
			generation["maxOutputTokens"] = max_tokens
		if json_output:
			generation["responseMimeType"] = "application/json"
		if generation:
			payload["generationConfig"] = generation

		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key

		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except httpx.HTTPStatusError as http_err:
			logger.warning("Gemini returned HTTP %s", http_err.response.status_code)
			last_error = http_err
		except httpx.RequestError as net_err:
			logger.warning("Gemini request failed: %s", net_err)
			last_error = net_err
		except (KeyError, IndexError, ValueError) as shape_err:
			logger.warning("Unexpected Gemini response shape")
			last_error = shape_err

		return await self._fallback_generate(prompt, system, temperature, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(
		self,
		prompt: str,
		system: Optional[str],
		temperature: Optional[float],
		primary_error: Optional[Exception],
	) -> str:
		if self._fallback_client is None:
			raise LLMUnavailable("Gemini call failed and no fallback configured") from primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		messages = []
		if system:
			messages.append({"role": "system", "content": system})
		messages.append({"role": "user", "content": prompt})
		payload: Dict[str, Any] = {"model": settings.openrouter_model, "messages": messages}
		if temperature is not None:
			payload["temperature"] = temperature
		try:
			r = await self._fallback_client.post(settings.openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			logger.warning("OpenRouter fallback failed: %s", fallback_err)
			raise LLMUnavailable(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
