"""Access and capability policies checked before any upstream call."""

from collections.abc import Iterable
from dataclasses import dataclass

from llm_relay.models import CallerIdentity, ChatCompletionRequest
from llm_relay.providers.registry import ModelEntry, ProviderEntry
from llm_relay.utils import get_logger

logger = get_logger(__name__)

PREMIUM_REQUIRED = "premium access required"
IMAGES_UNSUPPORTED = "This model does not support image inputs"


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of a policy check."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(allowed=False, reason=reason)


class AccessPolicy:
    """Premium gating."""

    def authorize(
        self, model: ModelEntry, caller: CallerIdentity | None
    ) -> PolicyDecision:
        """Check whether the caller may use the model.

        Args:
            model: Requested model
            caller: Authenticated caller, None when anonymous

        Returns:
            Decision; premium models require a premium caller
        """
        if model.premium and (caller is None or not caller.premium):
            logger.info(
                "policy.premium_denied",
                model=model.id,
                caller=caller.id if caller else None,
            )
            return PolicyDecision.deny(PREMIUM_REQUIRED)
        return PolicyDecision.allow()


class ImagePolicy:
    """Rejects image content for models without vision support."""

    def __init__(
        self,
        vision_models: Iterable[str] = (),
        assume_all_models_support_images: bool = False,
    ) -> None:
        """Initialize policy.

        Args:
            vision_models: Provider-side model ids that accept images
            assume_all_models_support_images: Global override
        """
        self.vision_models = frozenset(vision_models)
        self.assume_all = assume_all_models_support_images

    def model_supports_images(
        self, model_id: str, providers: list[ProviderEntry]
    ) -> bool:
        """Check image support across every resolved provider.

        Each provider's own model id must be on the allow-list. Falls back
        to the public id when no provider serves the model.
        """
        if self.assume_all:
            return True
        provider_model_ids = [p.models[model_id] for p in providers] or [model_id]
        return all(m in self.vision_models for m in provider_model_ids)

    def check_image_support(
        self,
        model_id: str,
        request: ChatCompletionRequest,
        providers: list[ProviderEntry],
    ) -> PolicyDecision:
        """Deny image-bearing requests for models without vision support.

        Args:
            model_id: Public model id
            request: Sanitized request
            providers: Providers resolved for the model

        Returns:
            Decision
        """
        if request.has_image_content and not self.model_supports_images(model_id, providers):
            logger.info("policy.images_denied", model=model_id)
            return PolicyDecision.deny(IMAGES_UNSUPPORTED)
        return PolicyDecision.allow()
