"""Per-command dispatch policies

A policy decides when a context's reply means the command took effect (the
dispatcher stops there) and whether the reply may become the session's
remembered speed.
"""

from typing import Literal, Optional

from pydantic import BaseModel

from speedrelay.protocol.messages import SENTINEL_CONTEXT_ID, ContextId, ContextResponse

# "applied": cache unless the context said applied=False
CachePolicy = Literal["applied", "always", "never"]
StopCondition = Literal["applied", "playing", "never"]


class CommandPolicy(BaseModel):
    """Stop and caching rules for one command type"""

    model_config = {"frozen": True}

    stop_on: StopCondition = "applied"
    cache: CachePolicy = "never"
    cache_from_sentinel: bool = True

    def took_effect(self, response: ContextResponse) -> bool:
        if self.stop_on == "applied":
            return response.applied is True
        if self.stop_on == "playing":
            return response.has_playing is True
        return False

    def may_cache(self, response: Optional[ContextResponse], context_id: Optional[ContextId]) -> bool:
        """Whether a reply may be remembered. The remember-speed setting is checked by the caller."""
        if response is None or response.speed is None:
            return False
        if context_id == SENTINEL_CONTEXT_ID and not self.cache_from_sentinel:
            return False
        if self.cache == "always":
            return True
        if self.cache == "applied":
            return response.applied is not False
        return False


DEFAULT_POLICIES: dict[str, CommandPolicy] = {
    "GET_STATE": CommandPolicy(stop_on="playing", cache="never"),
    "SET_SPEED": CommandPolicy(stop_on="applied", cache="applied"),
    "CHANGE_SPEED": CommandPolicy(stop_on="applied", cache="applied"),
    "CONFIG_CHANGED": CommandPolicy(stop_on="applied", cache="never"),
}


def resolve_policies(overrides: Optional[dict[str, CommandPolicy]] = None) -> dict[str, CommandPolicy]:
    """Default policies with caller overrides applied per command type"""
    policies = dict(DEFAULT_POLICIES)
    if overrides:
        unknown = set(overrides) - set(DEFAULT_POLICIES)
        if unknown:
            raise ValueError(f"No such command type: {', '.join(sorted(unknown))}")
        policies.update(overrides)
    return policies
