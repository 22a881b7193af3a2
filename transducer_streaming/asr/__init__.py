"""Transducer search, chunked encoding, endpointing and the decoder session."""

from .interfaces import (
    FeatureExtractor,
    TransducerModel,
    SymbolTable,
)

from .beam import HypothesisBeam, merge_hypotheses
from .search import (
    SearchStrategy,
    GreedySearch,
    ModifiedBeamSearch,
    create_search,
)
from .stepper import EncoderStepper
from .endpoint import EndpointRule, EndpointDetector
from .symbols import TokenSymbolTable
from .decoder import Decoder, DecoderState

__all__ = [
    "FeatureExtractor",
    "TransducerModel",
    "SymbolTable",
    "HypothesisBeam",
    "merge_hypotheses",
    "SearchStrategy",
    "GreedySearch",
    "ModifiedBeamSearch",
    "create_search",
    "EncoderStepper",
    "EndpointRule",
    "EndpointDetector",
    "TokenSymbolTable",
    "Decoder",
    "DecoderState",
]
