"""
Model gateway over interchangeable LLM providers.

One chat-completion request per call, raw text back. The gateway never
retries: non-2xx responses are classified and raised at once so the caller
owns retry and abort policy.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

import httpx
import requests
from ollama import Client, ResponseError

from src.pm_dojo.core import config
from src.pm_dojo.core.metrics import increment, start_timer, stop_timer
from src.pm_dojo.pipeline.errors import (
    GatewayError,
    MalformedResponse,
    NoCredential,
    error_for_status,
)

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    OPENAI = "openai"
    GOOGLE_GEMINI = "google_gemini"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    LOVABLE = "lovable"
    OLLAMA = "ollama"


class WireFormat(str, Enum):
    OPENAI_CHAT = "openai_chat"
    ANTHROPIC_MESSAGES = "anthropic_messages"
    OLLAMA_CHAT = "ollama_chat"


def _bearer(api_key: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


def _anthropic_headers(api_key: str) -> Dict[str, str]:
    return {"x-api-key": api_key, "anthropic-version": "2023-06-01"}


@dataclass(frozen=True)
class ProviderSpec:
    display_name: str
    endpoint: str
    default_model: str
    wire_format: WireFormat
    auth_headers: Callable[[str], Dict[str, str]]


PROVIDERS: Dict[Provider, ProviderSpec] = {
    Provider.OPENAI: ProviderSpec(
        display_name="OpenAI",
        endpoint="https://api.openai.com/v1/chat/completions",
        default_model="gpt-4o",
        wire_format=WireFormat.OPENAI_CHAT,
        auth_headers=_bearer,
    ),
    Provider.GOOGLE_GEMINI: ProviderSpec(
        display_name="Google Gemini",
        endpoint="https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
        default_model="gemini-2.5-flash",
        wire_format=WireFormat.OPENAI_CHAT,
        auth_headers=_bearer,
    ),
    Provider.ANTHROPIC: ProviderSpec(
        display_name="Anthropic",
        endpoint="https://api.anthropic.com/v1/messages",
        default_model="claude-sonnet-4-20250514",
        wire_format=WireFormat.ANTHROPIC_MESSAGES,
        auth_headers=_anthropic_headers,
    ),
    Provider.DEEPSEEK: ProviderSpec(
        display_name="DeepSeek",
        endpoint="https://api.deepseek.com/chat/completions",
        default_model="deepseek-chat",
        wire_format=WireFormat.OPENAI_CHAT,
        auth_headers=_bearer,
    ),
    Provider.LOVABLE: ProviderSpec(
        display_name="Lovable AI",
        endpoint="https://ai.gateway.lovable.dev/v1/chat/completions",
        default_model="google/gemini-3-flash-preview",
        wire_format=WireFormat.OPENAI_CHAT,
        auth_headers=_bearer,
    ),
    # Ollama Cloud; deepseek-v3.1 is large enough for the structured extraction prompt
    Provider.OLLAMA: ProviderSpec(
        display_name="Ollama Cloud",
        endpoint=config.OLLAMA_HOST,
        default_model="deepseek-v3.1:671b-cloud",
        wire_format=WireFormat.OLLAMA_CHAT,
        auth_headers=_bearer,
    ),
}


@dataclass(frozen=True)
class Credential:
    provider: Provider
    api_key: str
    model: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credential(provider={self.provider.value!r}, model={self.model!r})"


# Maps a caller id (None for the batch/service caller) to a credential
CredentialResolver = Callable[[Optional[str]], Optional[Credential]]


def service_credential_from_env() -> Optional[Credential]:
    """The batch-job credential from PM_DOJO_LLM_* settings, if configured."""
    if not config.LLM_API_KEY:
        return None
    provider_name = (config.LLM_PROVIDER or Provider.LOVABLE.value).strip().lower()
    try:
        provider = Provider(provider_name)
    except ValueError:
        logger.error(f"Unknown PM_DOJO_LLM_PROVIDER '{provider_name}'; no service credential available")
        return None
    return Credential(provider=provider, api_key=config.LLM_API_KEY, model=config.LLM_MODEL)


class StaticCredentials:
    """
    Resolver backed by a fixed mapping of caller id to credential.

    `default` answers for callers not in the mapping (including the service
    caller, None). Leave it unset to refuse unknown callers.
    """

    def __init__(
        self,
        credentials: Optional[Mapping[str, Credential]] = None,
        default: Optional[Credential] = None,
    ):
        self.credentials = dict(credentials or {})
        self.default = default

    def __call__(self, caller: Optional[str]) -> Optional[Credential]:
        if caller is not None and caller in self.credentials:
            return self.credentials[caller]
        return self.default


def env_credential_resolver(caller: Optional[str] = None) -> Optional[Credential]:
    """
    Default resolver: the service caller gets the env credential; named
    callers get it only when PM_DOJO_LLM_SHARED_FALLBACK is enabled.
    """
    if caller is not None and not config.LLM_SHARED_FALLBACK:
        return None
    return service_credential_from_env()


class ModelGateway:
    """
    Uniform chat-completion interface.

    Handles:
    - Credential resolution per caller (no credential -> NoCredential, no call)
    - Provider-specific request/response shapes
    - Status classification into the error taxonomy
    """

    def __init__(
        self,
        resolver: CredentialResolver = env_credential_resolver,
        session: Optional[requests.Session] = None,
        timeout: float = config.LLM_REQUEST_TIMEOUT_SECONDS,
        ollama_client_factory: Optional[Callable[[Credential], Client]] = None,
    ):
        self.resolver = resolver
        self.session = session or requests.Session()
        self.timeout = timeout
        self.ollama_client_factory = ollama_client_factory or self._default_ollama_client

    def _default_ollama_client(self, credential: Credential) -> Client:
        return Client(
            host=PROVIDERS[Provider.OLLAMA].endpoint,
            headers=_bearer(credential.api_key),
            timeout=self.timeout,
        )

    def resolve(self, caller: Optional[str] = None) -> Credential:
        credential = self.resolver(caller)
        if credential is None or not credential.api_key:
            raise NoCredential()
        return credential

    def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        caller: Optional[str] = None,
    ) -> str:
        """
        Send one chat request and return the raw text (possibly empty).

        Raises:
            NoCredential: resolver returned nothing for the caller.
            RateLimited / PaymentRequired / BadCredential / GatewayError:
                classified non-2xx response, or transport failure (status None).
            MalformedResponse: 2xx body was not the provider's JSON shape.
        """
        credential = self.resolve(caller)
        spec = PROVIDERS[credential.provider]
        model = credential.model or spec.default_model
        labels = {"provider": credential.provider.value}

        logger.debug(
            f"LLM call: provider={credential.provider.value} model={model} "
            f"messages={len(messages)} max_tokens={max_tokens}"
        )
        timer_id = start_timer("llm_call", labels)
        try:
            if spec.wire_format == WireFormat.OLLAMA_CHAT:
                text = self._complete_ollama(credential, spec, model, messages, max_tokens)
            else:
                text = self._complete_http(credential, spec, model, messages, max_tokens)
        except GatewayError as e:
            increment("llm_calls", labels={**labels, "status": e.kind.value})
            raise
        finally:
            stop_timer("llm_call", labels, timer_id=timer_id)

        increment("llm_calls", labels={**labels, "status": "ok"})
        return text

    # ------------------------------------------------------------
    # HTTP providers
    # ------------------------------------------------------------

    def _complete_http(
        self,
        credential: Credential,
        spec: ProviderSpec,
        model: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
    ) -> str:
        payload = build_payload(spec.wire_format, model, messages, max_tokens)
        headers = {"Content-Type": "application/json", **spec.auth_headers(credential.api_key)}

        try:
            resp = self.session.post(spec.endpoint, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"{spec.display_name} request failed: {e}")
            raise GatewayError(f"Could not reach {spec.display_name}: {e}", provider=spec.display_name) from e

        if not 200 <= resp.status_code < 300:
            logger.warning(f"{spec.display_name} returned {resp.status_code}: {resp.text[:300]}")
            raise error_for_status(resp.status_code, resp.text, spec.display_name)

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(
                f"{spec.display_name} returned a non-JSON body", excerpt=resp.text[:2000]
            ) from e

        return extract_text(spec.wire_format, data)

    # ------------------------------------------------------------
    # Ollama Cloud
    # ------------------------------------------------------------

    def _complete_ollama(
        self,
        credential: Credential,
        spec: ProviderSpec,
        model: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
    ) -> str:
        client = self.ollama_client_factory(credential)
        try:
            response = client.chat(
                model=model,
                messages=messages,
                options={"num_predict": max_tokens},
            )
        except ResponseError as e:
            logger.warning(f"{spec.display_name} returned {e.status_code}: {e.error}")
            raise error_for_status(e.status_code, str(e.error), spec.display_name) from e
        except (ConnectionError, httpx.TransportError) as e:
            logger.error(f"{spec.display_name} request failed: {e}")
            raise GatewayError(f"Could not reach {spec.display_name}: {e}", provider=spec.display_name) from e

        message = response["message"]
        return (message["content"] if message else "") or ""


def build_payload(
    wire_format: WireFormat,
    model: str,
    messages: List[Dict[str, str]],
    max_tokens: int,
) -> Dict:
    """Request body for an HTTP provider."""
    if wire_format == WireFormat.ANTHROPIC_MESSAGES:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [m for m in messages if m["role"] != "system"],
        }
        if system:
            payload["system"] = system
        return payload
    return {"model": model, "messages": messages, "max_tokens": max_tokens}


def extract_text(wire_format: WireFormat, data: Dict) -> str:
    """Pull the completion text out of a provider response; "" when absent."""
    try:
        if wire_format == WireFormat.ANTHROPIC_MESSAGES:
            return data["content"][0].get("text") or ""
        return data["choices"][0]["message"].get("content") or ""
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
