"""Provider abstraction for builder model calls

Architecture:
- Provider protocol: one synchronous ``generate()`` call per model round
- Adapters (e.g. AnthropicProvider) translate to a vendor SDK
- Errors from adapters are ProviderError; a "tools unsupported" message is
  the one signal the runner reacts to by changing protocol
"""

from typing import Protocol

from ..schemas import ProviderRequest, ProviderResponse


class Provider(Protocol):
    """Protocol for model providers

    Implementations:
    - AnthropicProvider (anthropic SDK)
    - Scripted providers in tests
    """

    name: str

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Run one model call

        Args:
            request: Messages plus optional tools, tool_choice and response_format

        Returns:
            ProviderResponse with the assistant message and any tool calls

        Raises:
            ProviderError: On API failure
        """
        ...
