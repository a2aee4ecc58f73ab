"""Provider-independent envelope for one inbound webhook delivery."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class WebhookMessage:
    """One inbound webhook delivery.

    Attributes:
        endpoint: Path the delivery arrived on (e.g. "/webhooks/stripe").
        body: Raw request body. Signatures are computed over these exact bytes.
        headers: Read-only mapping of lower-cased header name to value.
            Compared for equality but left out of the hash.
    """

    endpoint: str
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", bytes(self.body))
        object.__setattr__(
            self,
            "headers",
            MappingProxyType({name.lower(): value for name, value in self.headers.items()}),
        )

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, invalid sequences replaced."""
        return self.body.decode("utf-8", errors="replace")
