"""Chat-completions client used to write weekly digests."""

import json
import os
import re

import httpx
import yaml

ENV_PATTERN = re.compile(r"\$\{env\.([^}]+)\}")
FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def resolve_env(value: str | None) -> str | None:
    """Expand ``${env.NAME:-default}`` references in a config value."""
    if not value or "${env." not in value:
        return value
    for match in ENV_PATTERN.findall(value):
        env_var, _, default = match.partition(":-")
        value = value.replace(f"${{env.{match}}}", os.getenv(env_var, default) or "")
    return value


class LLMClient:
    """OpenAI-compatible chat completions over httpx.

    Configuration comes from the YAML file named by ``DIGEST_LLM_CONFIG``
    when set, otherwise from ``OPENAI_BASE_URL``, ``OPENAI_API_KEY`` and
    ``OPENAI_MODEL``.
    """

    def __init__(self, config_path: str | None = None, http_client: httpx.AsyncClient | None = None):
        self.config_path = config_path or os.getenv("DIGEST_LLM_CONFIG")
        self._load_config()
        self.http_client = http_client or self._initialize_client()

    def _load_config(self) -> None:
        provider: dict = {}
        if self.config_path:
            with open(self.config_path) as f:
                config = yaml.safe_load(f) or {}
            providers = config.get("providers", {}).get("inference", [])
            if not providers:
                raise ValueError(f"No inference providers configured in {self.config_path}")
            provider = providers[0]

        self.base_url = resolve_env(provider.get("base_url")) or os.getenv(
            "OPENAI_BASE_URL", "https://api.openai.com"
        )
        self.api_key = resolve_env(provider.get("api_key")) or os.getenv("OPENAI_API_KEY", "")
        self.model = provider.get("model") or os.getenv("OPENAI_MODEL", "gpt-4")
        self.temperature = provider.get("temperature", 0.7)
        self.max_tokens = provider.get("max_tokens", 1000)
        self.timeout = provider.get("timeout", 60.0)

    def _initialize_client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=httpx.Timeout(self.timeout))

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        """Return the assistant message for a single-turn chat."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request_data = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if json_mode:
            request_data["response_format"] = {"type": "json_object"}

        response = await self.http_client.post("/v1/chat/completions", json=request_data)
        response.raise_for_status()

        result = response.json()
        return result["choices"][0]["message"]["content"] or ""

    async def generate_json(self, prompt: str, system_prompt: str | None = None, **kwargs) -> dict:
        """Generate and decode a JSON object.

        Raises:
            ValueError: If the response holds no JSON object
        """
        response = await self.generate(prompt, system_prompt=system_prompt, json_mode=True, **kwargs)
        try:
            parsed = json.loads(response)
        except json.JSONDecodeError:
            json_match = FENCED_JSON.search(response)
            if not json_match:
                raise ValueError(f"Failed to parse LLM response: {response[:200]}")
            parsed = json.loads(json_match.group(1))

        if not isinstance(parsed, dict):
            raise ValueError("LLM response is not a JSON object")
        return parsed

    async def close(self) -> None:
        await self.http_client.aclose()
