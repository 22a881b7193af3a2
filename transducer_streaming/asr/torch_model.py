"""
PyTorch binding for exported transducer models.

Wraps three modules (usually TorchScript files):
  encoder(x: (1, T, D), states) -> (encoder_out: (1, T', C), next_states)
  decoder(y: (1, context_size) int64) -> (1, 1, C) or (1, C)
  joiner(encoder_out: (1, C), decoder_out: (1, C)) -> logits (1, V)
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Tuple, Union

import numpy as np

import torch

from ..core.errors import ModelInferenceFailure
from .interfaces import TransducerModel

logger = logging.getLogger(__name__)


class TorchTransducer(TransducerModel):
    """TransducerModel backed by torch modules."""

    def __init__(
        self,
        encoder: torch.nn.Module,
        decoder: torch.nn.Module,
        joiner: torch.nn.Module,
        *,
        blank_id: int = 0,
        context_size: int = 2,
        segment_size: int = 39,
        hop_size: int = 32,
        subsampling_factor: int = 4,
        init_state_fn: Optional[Callable[[], Any]] = None,
        device: Optional[str] = None,
    ):
        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        self.device = torch.device(device)

        self.encoder = encoder.to(self.device).eval()
        self.decoder = decoder.to(self.device).eval()
        self.joiner = joiner.to(self.device).eval()

        self.blank_id = blank_id
        self.context_size = context_size
        self.segment_size = segment_size
        self.hop_size = hop_size
        self.subsampling_factor = subsampling_factor
        self._init_state_fn = init_state_fn

    @classmethod
    def from_files(
        cls,
        encoder_path: Union[str, Path],
        decoder_path: Union[str, Path],
        joiner_path: Union[str, Path],
        device: Optional[str] = None,
        **kwargs,
    ) -> "TorchTransducer":
        """Load TorchScript encoder/decoder/joiner files."""
        map_location = device or "cpu"
        modules = []
        for path in (encoder_path, decoder_path, joiner_path):
            logger.info("Loading %s", path)
            modules.append(torch.jit.load(str(path), map_location=map_location))
        return cls(*modules, device=device, **kwargs)

    def initial_encoder_state(self) -> Any:
        if self._init_state_fn is not None:
            return self._init_state_fn()
        get_init_states = getattr(self.encoder, "get_init_states", None)
        if get_init_states is not None:
            return self._run("encoder init states", get_init_states)
        return []

    @torch.inference_mode()
    def run_encoder(self, frames: np.ndarray, state: Any) -> Tuple[np.ndarray, Any]:
        x = torch.from_numpy(np.ascontiguousarray(frames, dtype=np.float32)).unsqueeze(0).to(self.device)
        encoder_out, next_state = self._run("encoder", self.encoder, x, state)
        return encoder_out.squeeze(0).cpu().numpy(), next_state

    @torch.inference_mode()
    def run_predictor(self, context: Sequence[int]) -> np.ndarray:
        y = torch.tensor([list(context)], dtype=torch.int64, device=self.device)
        decoder_out = self._run("decoder", self.decoder, y)
        return decoder_out.reshape(-1).cpu().numpy()

    @torch.inference_mode()
    def run_joiner(self, decoder_out: np.ndarray, encoder_out: np.ndarray) -> np.ndarray:
        enc = torch.from_numpy(np.asarray(encoder_out, dtype=np.float32)).reshape(1, -1).to(self.device)
        dec = torch.from_numpy(np.asarray(decoder_out, dtype=np.float32)).reshape(1, -1).to(self.device)
        logits = self._run("joiner", self.joiner, enc, dec)
        return torch.log_softmax(logits.reshape(-1).float(), dim=-1).cpu().numpy()

    def _run(self, name: str, fn: Callable, *args):
        try:
            return fn(*args)
        except (RuntimeError, ValueError, TypeError) as e:
            raise ModelInferenceFailure(f"{name} forward failed: {e}") from e
