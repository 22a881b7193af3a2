import os
import sys
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pytest

# Ensure project root is in sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from transducer_streaming.asr.interfaces import FeatureExtractor, SymbolTable, TransducerModel
from transducer_streaming.asr.symbols import TokenSymbolTable
from transducer_streaming.core.errors import ModelInferenceFailure


class BlockFeatureExtractor(FeatureExtractor):
    """One 1-D frame per `samples_per_frame` samples; the frame value is the block mean."""

    def __init__(self, sample_rate: int = 1000, samples_per_frame: int = 10):
        self.sample_rate = sample_rate
        self.samples_per_frame = samples_per_frame
        self.feature_dim = 1
        self.frame_shift_seconds = samples_per_frame / sample_rate
        self.reset()

    def accept_waveform(self, samples: np.ndarray) -> None:
        self._remainder = np.concatenate([self._remainder, np.asarray(samples, dtype=np.float32)])
        n = len(self._remainder) // self.samples_per_frame
        if n:
            blocks = self._remainder[:n * self.samples_per_frame].reshape(n, self.samples_per_frame)
            self._frames.extend(blocks.mean(axis=1).tolist())
            self._remainder = self._remainder[n * self.samples_per_frame:]

    def input_finished(self) -> None:
        if len(self._remainder):
            self._frames.append(float(self._remainder.mean()))
            self._remainder = np.zeros(0, dtype=np.float32)

    @property
    def num_frames_ready(self) -> int:
        return len(self._frames)

    def get_frames(self, start: int, count: int) -> np.ndarray:
        return np.asarray(self._frames[start:start + count], dtype=np.float32).reshape(-1, 1)

    def reset(self) -> None:
        self._frames = []
        self._remainder = np.zeros(0, dtype=np.float32)


class ScriptedModel(TransducerModel):
    """
    Encoder passes the first `hop_size` frames through; the joiner puts all
    probability on the token equal to the frame value (0 or less is blank).
    """

    blank_id = 0
    context_size = 2
    subsampling_factor = 1

    def __init__(self, segment_size: int = 4, hop_size: int = 4, vocab_size: int = 16):
        self.segment_size = segment_size
        self.hop_size = hop_size
        self.vocab_size = vocab_size
        self.encoder_chunks = []
        self.predictor_calls = 0
        self.fail_encoder = False

    def initial_encoder_state(self):
        return {"chunks": 0}

    def run_encoder(self, frames, state):
        if self.fail_encoder:
            raise ModelInferenceFailure("encoder exploded")
        self.encoder_chunks.append(np.array(frames))
        return np.array(frames[:self.hop_size]), {"chunks": state["chunks"] + 1}

    def run_predictor(self, context):
        self.predictor_calls += 1
        return np.asarray(context, dtype=np.float32)

    def run_joiner(self, decoder_out, encoder_out):
        code = int(round(float(encoder_out[0])))
        log_probs = np.full(self.vocab_size, -np.inf)
        log_probs[code if code > 0 else self.blank_id] = 0.0
        return log_probs


class TableModel(TransducerModel):
    """Joiner output looked up by (context, frame code); encoder frames are codes."""

    blank_id = 0
    context_size = 1
    segment_size = 1
    hop_size = 1
    subsampling_factor = 1

    def __init__(self, table: Dict[Tuple[Tuple[int, ...], int], Dict[int, float]], vocab_size: int = 8):
        self.table = table
        self.vocab_size = vocab_size

    def initial_encoder_state(self):
        return None

    def run_encoder(self, frames, state):
        return np.array(frames), state

    def run_predictor(self, context):
        return np.asarray(context, dtype=np.float32)

    def run_joiner(self, decoder_out, encoder_out):
        key = (tuple(int(x) for x in decoder_out), int(round(float(encoder_out[0]))))
        probs = self.table.get(key, {self.blank_id: 1.0})
        log_probs = np.full(self.vocab_size, -np.inf)
        for token, p in probs.items():
            log_probs[token] = np.log(p)
        return log_probs


class RandomModel(TransducerModel):
    """Small fixed random transducer with a real dependency on the context."""

    blank_id = 0
    context_size = 2
    subsampling_factor = 1

    def __init__(self, vocab_size: int = 12, dim: int = 6, feature_dim: int = 1,
                 segment_size: int = 3, hop_size: int = 2, seed: int = 0, blank_bias: float = 0.5):
        rng = np.random.default_rng(seed)
        self.vocab_size = vocab_size
        self.segment_size = segment_size
        self.hop_size = hop_size
        self.feature_proj = rng.normal(size=(feature_dim, dim))
        self.embed = rng.normal(size=(vocab_size, dim))
        self.enc_proj = rng.normal(size=(dim, vocab_size))
        self.dec_proj = rng.normal(size=(dim, vocab_size))
        self.blank_bias = blank_bias

    def initial_encoder_state(self):
        return 0

    def run_encoder(self, frames, state):
        return np.asarray(frames[:self.hop_size]) @ self.feature_proj, state + 1

    def run_predictor(self, context):
        return self.embed[list(context)].sum(axis=0)

    def run_joiner(self, decoder_out, encoder_out):
        logits = encoder_out @ self.enc_proj + decoder_out @ self.dec_proj
        logits[self.blank_id] += self.blank_bias
        shifted = logits - logits.max()
        return shifted - np.log(np.exp(shifted).sum())


class DigitSymbolTable(SymbolTable):
    def decode(self, tokens: Sequence[int]) -> str:
        return " ".join(str(t) for t in tokens)


def frames_to_samples(codes, samples_per_frame: int = 10) -> np.ndarray:
    """Audio whose BlockFeatureExtractor frames equal `codes`."""
    return np.repeat(np.asarray(codes, dtype=np.float32), samples_per_frame)


def speech_codes(tokens, num_frames: int, last_at_end: bool = True):
    """Frame codes for `num_frames` frames emitting `tokens` evenly, blank elsewhere."""
    codes = [0] * num_frames
    if last_at_end:
        positions = np.linspace(num_frames // (len(tokens) + 1), num_frames - 1, len(tokens)).astype(int)
    else:
        positions = np.linspace(0, num_frames - 1, len(tokens) + 2)[1:-1].astype(int)
    for pos, tok in zip(positions, tokens):
        codes[int(pos)] = tok
    return codes


@pytest.fixture
def feature_extractor():
    return BlockFeatureExtractor()


@pytest.fixture
def scripted_model():
    return ScriptedModel()


@pytest.fixture
def digits():
    return DigitSymbolTable()


@pytest.fixture
def bpe_symbols():
    return TokenSymbolTable({0: "<blk>", 1: "▁HE", 2: "LLO", 3: "▁WORLD", 5: "▁A", 9: "B"})


def make_decoder(model: Optional[TransducerModel] = None, feature_extractor=None, symbols=None, **kwargs):
    from transducer_streaming.asr.decoder import Decoder
    from transducer_streaming.core.config import DecoderConfig

    decoder_config = kwargs.pop("decoder_config", None) or DecoderConfig(
        method=kwargs.pop("method", "modified_beam_search"),
        num_active_paths=kwargs.pop("num_active_paths", 4),
    )
    return Decoder(
        model or ScriptedModel(),
        feature_extractor or BlockFeatureExtractor(),
        symbols or DigitSymbolTable(),
        decoder_config=decoder_config,
        **kwargs,
    )
