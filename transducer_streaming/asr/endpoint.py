"""
Rule-based endpoint detection.

Counts encoder output frames since the last reset and since the best
hypothesis last changed, and checks them against three rules of the same
shape. Detection is advisory: nothing here stops decoding.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..core.config import EndpointConfig, EndpointRuleConfig, validate_endpoint_config
from ..core.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# Absorbs float error in frame_count * frame_duration.
_EPS_S = 1e-6


@dataclass(frozen=True)
class EndpointRule:
    name: str
    must_contain_nonsilence: bool
    min_trailing_silence: float
    min_utterance_length: float

    @classmethod
    def from_config(cls, name: str, config: EndpointRuleConfig) -> "EndpointRule":
        return cls(
            name=name,
            must_contain_nonsilence=config.must_contain_nonsilence,
            min_trailing_silence=float(config.min_trailing_silence),
            min_utterance_length=float(config.min_utterance_length),
        )

    def fires(self, contains_nonsilence: bool, trailing_silence: float, utterance_length: float) -> bool:
        if self.must_contain_nonsilence and not contains_nonsilence:
            return False
        return (
            trailing_silence + _EPS_S >= self.min_trailing_silence
            and utterance_length + _EPS_S >= self.min_utterance_length
        )


class EndpointDetector:
    """Tracks silence/utterance frame counters and evaluates endpoint rules."""

    def __init__(self, config: Optional[EndpointConfig] = None, frame_duration: float = 0.04):
        config = config or EndpointConfig()
        validate_endpoint_config(config)
        if not frame_duration > 0:
            raise InvalidConfiguration(f"frame_duration must be positive, got {frame_duration}")
        self.frame_duration = frame_duration
        self.rules: Tuple[EndpointRule, ...] = (
            EndpointRule.from_config("rule1", config.rule1),
            EndpointRule.from_config("rule2", config.rule2),
            EndpointRule.from_config("rule3", config.rule3),
        )
        self.silence_frame_count = 0
        self.utterance_frame_count = 0

    @property
    def trailing_silence(self) -> float:
        return self.silence_frame_count * self.frame_duration

    @property
    def utterance_length(self) -> float:
        return self.utterance_frame_count * self.frame_duration

    def update(self, emitted: bool, num_frames: int = 1) -> None:
        """Account for `num_frames` output frames; `emitted` means the best path changed."""
        self.utterance_frame_count += num_frames
        if emitted:
            self.silence_frame_count = 0
        else:
            self.silence_frame_count += num_frames

    def triggered_rule(self, contains_nonsilence: bool) -> Optional[EndpointRule]:
        """The first rule that fires, or None."""
        trailing = self.trailing_silence
        length = self.utterance_length
        for rule in self.rules:
            if rule.fires(contains_nonsilence, trailing, length):
                return rule
        return None

    def is_endpoint(self, contains_nonsilence: bool) -> bool:
        return self.triggered_rule(contains_nonsilence) is not None

    def reset(self) -> None:
        self.silence_frame_count = 0
        self.utterance_frame_count = 0
