"""
src/orchestrator/llm_openai.py

Chat providers. Each returns the RAW payload as a dict; the normalizer turns it
into a CanonicalResponse.
- GatewayProvider: default multi-model endpoint through the OpenAI SDK
  (any OpenAI-compatible base URL). Retries once without tools when the
  tool-enabled call fails, since some models reject tool specs.
- CustomHttpProvider: a user-registered endpoint, bearer-token authenticated,
  returning arbitrary JSON.
- ActiveProvider: routes each call to the provider the context selects.
"""


import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
from openai import APIError, AsyncOpenAI

import config
from orchestrator.errors import ProviderResponseError
from orchestrator.models import ProviderConfig


LOGGER = logging.getLogger(__name__)


class ChatProvider(Protocol):

    async def chat(
            self,
            messages: List[Dict[str, Any]],
            *,
            model: str,
            tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]: ...


class GatewayProvider:

    def __init__(
            self,
            *,
            api_key: Optional[str] = None,
            base_url: Optional[str] = None,
            client: Optional[AsyncOpenAI] = None,
            temperature: Optional[float] = None,
    ):

        self._client = client or AsyncOpenAI(
            api_key=api_key or config.OPENAI_API_KEY,
            base_url=base_url or config.OPENAI_BASE_URL,
        )
        self.temperature = temperature

    async def _create(self, messages: List[Dict[str, Any]], model: str, tools: Optional[List[Dict[str, Any]]]):

        kwargs: Dict[str, Any] = {"model": model, "messages": messages}

        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        return await self._client.chat.completions.create(**kwargs)

    async def chat(
            self,
            messages: List[Dict[str, Any]],
            *,
            model: str,
            tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Low-level call to the gateway. Returns the raw response as a dict.
        """

        attempts: Sequence[bool] = (True, False) if tools else (False,)
        last_error: Optional[Exception] = None

        for with_tools in attempts:
            try:
                resp = await self._create(messages, model, tools if with_tools else None)
                return resp.model_dump()
            except APIError as e:
                last_error = e
                if with_tools:
                    LOGGER.warning("Model %s rejected tool call request (%s); retrying without tools", model, e)

        message = getattr(last_error, "message", None) or str(last_error or "")

        raise ProviderResponseError(message or f"Model {model} is unavailable right now.")


class CustomHttpProvider:
    """POST `{messages, model}` to a user-registered URL with a bearer token."""

    def __init__(self, provider: ProviderConfig, *, timeout: float = 120.0, client: Optional[httpx.AsyncClient] = None):

        self.provider = provider
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:

        await self._client.aclose()

    async def chat(
            self,
            messages: List[Dict[str, Any]],
            *,
            model: str,
            tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:

        body: Dict[str, Any] = {"messages": messages, "model": model}

        if tools:
            body["tools"] = tools

        headers = {"Authorization": f"Bearer {self.provider.api_key}"}
        label = self.provider.label or self.provider.id

        try:
            resp = await self._client.post(self.provider.url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderResponseError(f"Provider {label} request failed: {e}") from e

        if resp.is_error:
            raise ProviderResponseError(resp.text or f"Provider {label} request failed ({resp.status_code})")

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderResponseError(f"Provider {label} returned non-JSON body") from e


class ActiveProvider:
    """
    ChatProvider that follows the context's provider selection.

    `ctx` is anything with `provider_id` and `providers` (an IdeContext). Each
    call goes to the registered custom endpoint for `ctx.provider_id`, or to
    `default` when none is selected. Custom providers are built once per id
    and rebuilt only when that registration changes.
    """

    def __init__(
            self,
            ctx: Any,
            default: ChatProvider,
            *,
            factory: Callable[[ProviderConfig], ChatProvider] = CustomHttpProvider,
    ):

        self.ctx = ctx
        self.default = default
        self.factory = factory
        self._custom: Dict[str, Tuple[ProviderConfig, ChatProvider]] = {}

    def current(self) -> ChatProvider:

        provider_id = self.ctx.provider_id

        if not provider_id:
            return self.default

        registered = next((p for p in self.ctx.providers if p.id == provider_id), None)
        if registered is None:
            raise ProviderResponseError("Provider not found")

        cached = self._custom.get(provider_id)
        if cached is None or cached[0] != registered:
            LOGGER.info("Using custom provider %s (%s)", registered.id, registered.label or registered.url)
            cached = (registered, self.factory(registered))
            self._custom[provider_id] = cached

        return cached[1]

    async def chat(
            self,
            messages: List[Dict[str, Any]],
            *,
            model: str,
            tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:

        return await self.current().chat(messages, model=model, tools=tools)
