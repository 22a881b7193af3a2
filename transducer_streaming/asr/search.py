"""
Search strategies over transducer output distributions.

Both strategies consume one encoder output frame at a time and return a new
HypothesisBeam. The transducer emits exactly one symbol (blank or not) per
frame, so every hypothesis in a beam has consumed the same number of frames
and their scores are directly comparable.
"""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..core.errors import InvalidConfiguration
from ..core.types import Hypothesis
from .beam import HypothesisBeam, topk_indices
from .interfaces import TransducerModel


def with_decoder_out(hyp: Hypothesis, model: TransducerModel) -> Hypothesis:
    """Attach the predictor embedding for `hyp`'s context, computing it only if missing."""
    if hyp.decoder_out is not None:
        return hyp
    context = hyp.context(model.context_size, model.blank_id)
    decoder_out = np.asarray(model.run_predictor(context), dtype=np.float32)
    return hyp.with_decoder_out(decoder_out)


def joiner_log_probs(hyp: Hypothesis, model: TransducerModel, encoder_frame: np.ndarray) -> np.ndarray:
    log_probs = model.run_joiner(hyp.decoder_out, encoder_frame)
    return np.asarray(log_probs, dtype=np.float64).reshape(-1)


class SearchStrategy(ABC):
    """Advances a beam by one encoder output frame."""

    beam_size: int = 1

    @abstractmethod
    def step(
        self,
        beam: HypothesisBeam,
        model: TransducerModel,
        encoder_frame: np.ndarray,
        frame_index: int,
    ) -> HypothesisBeam:
        raise NotImplementedError()


class GreedySearch(SearchStrategy):
    """Keep only the single best symbol at every frame."""

    beam_size = 1

    def step(
        self,
        beam: HypothesisBeam,
        model: TransducerModel,
        encoder_frame: np.ndarray,
        frame_index: int,
    ) -> HypothesisBeam:
        hyp = with_decoder_out(beam.best(), model)
        log_probs = joiner_log_probs(hyp, model, encoder_frame)
        token = int(np.argmax(hyp.score + log_probs))
        if token == model.blank_id:
            successor = hyp.extend_blank(float(log_probs[token]))
        else:
            successor = hyp.extend_token(token, float(log_probs[token]), frame_index)
        return HypothesisBeam([successor])


class ModifiedBeamSearch(SearchStrategy):
    """
    Beam search that emits at most one symbol per frame and merges alignments.

    For every hypothesis and every token a successor is formed (blank keeps the
    tokens, anything else appends). Successors landing on the same token
    sequence are merged by log-sum-exp, then the best `beam_size` are kept;
    ties go to the earliest-formed successor (beam order, then token id).

    Only three kinds of successor can survive pruning, so only those are
    formed: the blank successor, the `beam_size` best non-blank successors,
    and non-blank successors that extend into another member of the beam
    (the only ones that can gain score by merging).
    """

    def __init__(self, beam_size: int = 4):
        if beam_size <= 0:
            raise InvalidConfiguration(f"beam_size must be positive, got {beam_size}")
        self.beam_size = beam_size

    def step(
        self,
        beam: HypothesisBeam,
        model: TransducerModel,
        encoder_frame: np.ndarray,
        frame_index: int,
    ) -> HypothesisBeam:
        blank_id = model.blank_id
        hyps = [with_decoder_out(hyp, model) for hyp in beam]
        sequences = beam.token_sequences()

        candidates = HypothesisBeam()
        for hyp in hyps:
            log_probs = joiner_log_probs(hyp, model, encoder_frame)
            for token in self._candidate_tokens(hyp, log_probs, blank_id, sequences):
                log_prob = float(log_probs[token])
                if np.isneginf(log_prob):
                    continue
                if token == blank_id:
                    candidates.add(hyp.extend_blank(log_prob))
                else:
                    candidates.add(hyp.extend_token(token, log_prob, frame_index))

        return candidates.topk(self.beam_size)

    def _candidate_tokens(
        self,
        hyp: Hypothesis,
        log_probs: np.ndarray,
        blank_id: int,
        sequences: List[tuple],
    ) -> List[int]:
        non_blank = log_probs.copy()
        non_blank[blank_id] = -np.inf
        tokens = set(int(t) for t in topk_indices(non_blank, self.beam_size))
        tokens.add(blank_id)

        prefix_len = len(hyp.tokens) + 1
        for seq in sequences:
            if len(seq) == prefix_len and seq[:-1] == hyp.tokens:
                tokens.add(seq[-1])

        return sorted(tokens)


def create_search(method: str, num_active_paths: int = 4) -> SearchStrategy:
    """Factory mapping a decoding method name to a strategy."""
    if method == "greedy_search":
        return GreedySearch()
    if method == "modified_beam_search":
        return ModifiedBeamSearch(beam_size=num_active_paths)
    raise InvalidConfiguration(f"unknown decoding method: {method!r}")
