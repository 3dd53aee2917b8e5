"""Committee voting across several providers.

Every member receives the same prompt concurrently. Answers are grouped by a
vote key (the first 100 characters, stripped) and a winner is chosen by the
configured voting rule:

- ``majority``: the most frequent key wins; ties go to the key seen first
- ``unanimous``: the shared answer when every key matches, otherwise majority
- ``weighted``: each member adds its weight to its key; highest score wins
- ``None``: no vote; the content is a JSON document listing every member's
  answer, error and latency

An optional judge provider can synthesise the final answer from all member
outputs instead.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from ..errors import AllProvidersFailed, InvalidConfiguration
from ..observability.logging import get_logger, log_failover_event
from ..providers.base import ModelProvider
from ..types import CapabilityDescriptor, GenerateOptions, Locality, ModelResponse, TokenUsage

logger = get_logger(__name__)

VOTING_STRATEGIES = ("majority", "unanimous", "weighted")
VOTE_KEY_LENGTH = 100
DEFAULT_MIN_AGREEMENT = 0.5


def vote_key(content: str) -> str:
    """Signature used to decide whether two answers agree."""
    return content[:VOTE_KEY_LENGTH].strip()


@dataclass(frozen=True)
class MemberResult:
    """Outcome of one committee member."""

    provider: str
    content: Optional[str]
    error: Optional[str]
    latency: float
    """Milliseconds spent on this member."""
    usage: Optional[TokenUsage] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "content": self.content,
            "error": self.error,
            "latency": self.latency,
        }


@dataclass(frozen=True)
class CommitteeVerdict:
    """Full audit of one committee deliberation."""

    response: ModelResponse
    members: Tuple[MemberResult, ...]
    votes: Dict[str, float]
    agreement: float
    consensus: bool
    voting: Optional[str]
    judged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.response.metadata["committee"])


class Committee(ModelProvider):
    """
    Fan a prompt out to every member and pick or synthesise one answer.

    Args:
        providers: At least two members
        voting: "majority", "unanimous", "weighted" or None (structured output)
        weights: One weight per member; required for weighted voting
        min_agreement: Agreement ratio at which the result counts as consensus
        judge: Optional provider that writes the final answer from all
            member outputs

    Raises:
        InvalidConfiguration: On fewer than two members, an unknown voting
            rule, missing weights for weighted voting, or a weights/member
            count mismatch
    """

    provider_type = "committee"

    def __init__(
        self,
        providers: Sequence[ModelProvider],
        voting: Optional[str] = "majority",
        weights: Optional[Sequence[float]] = None,
        min_agreement: float = DEFAULT_MIN_AGREEMENT,
        judge: Optional[ModelProvider] = None,
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        members = list(providers)
        if len(members) < 2:
            raise InvalidConfiguration("Committee requires at least two providers")
        if voting is not None and voting not in VOTING_STRATEGIES:
            raise InvalidConfiguration(
                f"Unknown voting strategy '{voting}'. Expected one of: {', '.join(VOTING_STRATEGIES)}"
            )
        if voting == "weighted" and weights is None:
            raise InvalidConfiguration("Weights required for weighted voting strategy")
        if weights is not None and len(weights) != len(members):
            raise InvalidConfiguration(
                f"Number of weights ({len(weights)}) must match number of providers ({len(members)})"
            )

        super().__init__(name or self.provider_type, None, config)
        self.providers = members
        self.voting = voting
        self.weights = [float(w) for w in weights] if weights is not None else None
        self.min_agreement = min_agreement
        self.judge = judge

    async def deliberate(
        self,
        prompt: str,
        options: Optional[GenerateOptions] = None,
        *,
        timeout: Optional[float] = None,
    ) -> CommitteeVerdict:
        """
        Run one committee round and return the full verdict.

        Raises:
            AllProvidersFailed: If every member failed
        """
        return await self._with_deadline(
            self._deliberate(prompt, options or GenerateOptions()), timeout, "deliberate"
        )

    async def _deliberate(self, prompt: str, options: GenerateOptions) -> CommitteeVerdict:
        outcomes = await asyncio.gather(
            *(
                self._consult(index, provider, prompt, options)
                for index, provider in enumerate(self.providers)
            )
        )
        members = tuple(result for result, _ in outcomes)
        succeeded = [(index, result) for index, result in enumerate(members) if result.succeeded]
        if not succeeded:
            raise AllProvidersFailed(
                f"All committee members in {self.name} failed",
                [(result.provider, error) for result, error in outcomes if error is not None],
                provider=self.name,
            )

        usage = self._sum_usage(result.usage for _, result in succeeded)
        counts: Dict[str, int] = {}
        scores: Dict[str, float] = {}
        first_content: Dict[str, str] = {}
        for index, result in succeeded:
            key = vote_key(result.content or "")
            counts[key] = counts.get(key, 0) + 1
            scores[key] = scores.get(key, 0.0) + (self.weights[index] if self.weights else 1.0)
            first_content.setdefault(key, result.content or "")

        agreement = max(counts.values()) / len(succeeded)
        consensus = agreement >= self.min_agreement

        if self.voting is None:
            content = self._structured_output(members)
            votes: Dict[str, float] = {}
        else:
            votes = dict(scores) if self.voting == "weighted" else {k: float(v) for k, v in counts.items()}
            content = first_content[self._select_winner(counts, scores)]

        judged = False
        if self.judge is not None:
            judge_response = await self._synthesize(prompt, members, options)
            if judge_response is not None:
                content = judge_response.content
                usage = self._sum_usage([usage, judge_response.usage])
                judged = True
            else:
                content = self._structured_output(members)

        audit = {
            "voting": self.voting,
            "votes": votes,
            "agreement": agreement,
            "consensus": consensus,
            "judged": judged,
            "members": [member.to_dict() for member in members],
        }
        response = ModelResponse(
            content=content,
            usage=usage,
            provider=self.name,
            metadata={"committee": audit},
        )
        logger.info(
            f"Committee {self.name} decided with agreement {agreement:.2f} "
            f"({len(succeeded)}/{len(members)} members answered)"
        )
        return CommitteeVerdict(
            response=response,
            members=members,
            votes=votes,
            agreement=agreement,
            consensus=consensus,
            voting=self.voting,
            judged=judged,
        )

    async def _consult(
        self,
        index: int,
        provider: ModelProvider,
        prompt: str,
        options: GenerateOptions,
    ) -> Tuple[MemberResult, Optional[BaseException]]:
        start_time = time.monotonic()
        try:
            response = await provider.generate(prompt, options)
        except Exception as e:
            latency = (time.monotonic() - start_time) * 1000
            log_failover_event(
                strategy=self.provider_type,
                provider=provider.name,
                model=provider.model,
                attempt=index + 1,
                reason=str(e),
                logger=logger,
                extras={"strategy_name": self.name},
            )
            return MemberResult(provider=provider.name, content=None, error=str(e), latency=latency), e

        latency = (time.monotonic() - start_time) * 1000
        return (
            MemberResult(
                provider=provider.name,
                content=response.content,
                error=None,
                latency=latency,
                usage=response.usage,
            ),
            None,
        )

    def _select_winner(self, counts: Dict[str, int], scores: Dict[str, float]) -> str:
        # max() keeps the first maximal key, so ties go to the first answer seen
        if self.voting == "weighted":
            return max(scores, key=scores.__getitem__)
        if self.voting == "unanimous" and len(counts) == 1:
            return next(iter(counts))
        return max(counts, key=counts.__getitem__)

    @staticmethod
    def _sum_usage(usages) -> Optional[TokenUsage]:
        total: Optional[TokenUsage] = None
        for usage in usages:
            if usage is None:
                continue
            total = usage if total is None else total + usage
        return total

    def _structured_output(self, members: Sequence[MemberResult]) -> str:
        return json.dumps(
            {
                "committee": True,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "results": [member.to_dict() for member in members],
            },
            indent=2,
        )

    def _synthesis_prompt(self, prompt: str, members: Sequence[MemberResult]) -> str:
        sections = []
        for member in members:
            if member.succeeded:
                sections.append(f"--- Answer from {member.provider} ---\n{member.content}")
        answers = "\n\n".join(sections)
        return (
            "Several assistants answered the same request. Combine their answers "
            "into the single best response. Resolve disagreements and keep only "
            "what is correct.\n\n"
            f"Request:\n{prompt}\n\n"
            f"{answers}\n\n"
            "Final answer:"
        )

    async def _synthesize(
        self,
        prompt: str,
        members: Sequence[MemberResult],
        options: GenerateOptions,
    ) -> Optional[ModelResponse]:
        try:
            return await self.judge.generate(self._synthesis_prompt(prompt, members), options)
        except Exception as e:
            logger.warning(f"Committee judge '{self.judge.name}' failed, returning member results: {e}")
            return None

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        verdict = await self._deliberate(prompt, options)
        return verdict.response

    async def is_available(self) -> bool:
        results = await asyncio.gather(*(provider.is_available() for provider in self.providers))
        return sum(1 for available in results if available) >= 2

    def describe(self) -> CapabilityDescriptor:
        descriptors = [provider.describe() for provider in self.providers]
        remote = any(d.locality == Locality.REMOTE for d in descriptors)
        return CapabilityDescriptor(
            name=self.name,
            locality=Locality.REMOTE if remote else Locality.LOCAL,
            requires_auth=any(d.requires_auth for d in descriptors),
            supports_streaming=False,
            supports_tools=False,
            max_context_tokens=min(d.max_context_tokens for d in descriptors),
        )


__all__ = ["Committee", "CommitteeVerdict", "MemberResult", "VOTING_STRATEGIES", "vote_key"]
