import logging

import numpy as np
import pytest

from conftest import (
    BlockFeatureExtractor,
    RandomModel,
    ScriptedModel,
    frames_to_samples,
    make_decoder,
    speech_codes,
)
from transducer_streaming.asr.beam import HypothesisBeam
from transducer_streaming.asr.decoder import Decoder, DecoderState
from transducer_streaming.core.config import (
    AudioConfig,
    DecoderConfig,
    EndpointConfig,
    EndpointRuleConfig,
    StreamingConfig,
)
from transducer_streaming.core.errors import (
    DecoderStateError,
    ErrorCode,
    InvalidConfiguration,
    ModelInferenceFailure,
)
from transducer_streaming.core.types import Hypothesis

SR = 1000  # BlockFeatureExtractor: 10 samples per 10 ms frame


def _endpoint(rule1=100.0, rule2=100.0, rule3=1000.0):
    return EndpointConfig(
        rule1=EndpointRuleConfig(True, rule1, 0.0),
        rule2=EndpointRuleConfig(True, rule2, 0.0),
        rule3=EndpointRuleConfig(False, 0.0, rule3),
    )


def _feed(decoder, codes, chunk_frames=10):
    samples = frames_to_samples(codes)
    step = chunk_frames * 10
    for start in range(0, len(samples), step):
        decoder.accept_waveform(SR, samples[start:start + step])
        decoder.decode()


def _snapshot(decoder):
    return (
        decoder.get_result(),
        decoder.state,
        decoder.beam.token_sequences(),
        decoder.endpoint.silence_frame_count,
        decoder.endpoint.utterance_frame_count,
        decoder.stepper.num_processed,
        decoder.stepper.num_pending,
        decoder.failed,
    )


def test_speech_then_silence_reaches_endpoint_on_time():
    decoder = make_decoder(endpoint_config=_endpoint(rule1=2.4))
    codes = speech_codes([5, 9, 5], 200) + [0] * 300
    samples = frames_to_samples(codes)

    first_endpoint_at = None
    for n_frames in range(10, len(codes) + 1, 10):
        decoder.accept_waveform(SR, samples[(n_frames - 10) * 10:n_frames * 10])
        decoder.decode()
        if decoder.is_endpoint() and first_endpoint_at is None:
            first_endpoint_at = n_frames

    # last token is emitted on frame 199; 2.4 s of silence is 240 more frames
    assert first_endpoint_at == 440
    result = decoder.get_result()
    assert result.text == "5 9 5"
    assert result.tokens == (5, 9, 5)
    assert result.timestamps == pytest.approx((0.50, 1.24, 1.99))
    assert decoder.state == DecoderState.ENDPOINTED


def test_silence_counter_tracks_decoded_frames():
    decoder = make_decoder(endpoint_config=_endpoint())
    for n in range(1, 6):
        _feed(decoder, [0] * 8, chunk_frames=8)
        assert decoder.endpoint.silence_frame_count == 8 * n
    _feed(decoder, [3, 0, 0, 0])
    assert decoder.endpoint.silence_frame_count == 3


def test_no_endpoint_without_decoded_text():
    decoder = make_decoder(endpoint_config=_endpoint(rule1=0.5, rule2=0.2))
    _feed(decoder, [0] * 200)
    assert not decoder.is_endpoint()
    assert decoder.get_result().is_empty


def test_endpoint_disabled():
    decoder = make_decoder(
        decoder_config=DecoderConfig(enable_endpoint=False),
        endpoint_config=_endpoint(rule1=0.1),
    )
    _feed(decoder, [4] + [0] * 99)
    assert decoder.get_result().text == "4"
    assert not decoder.is_endpoint()


def test_decode_is_noop_below_one_chunk():
    model = ScriptedModel(segment_size=4, hop_size=4)
    decoder = make_decoder(model)
    decoder.accept_waveform(SR, frames_to_samples([7, 7, 7]))
    decoder.decode()
    decoder.decode()
    assert model.encoder_chunks == []
    assert decoder.stats.num_encoder_steps == 0
    assert decoder.get_result().is_empty
    assert decoder.state == DecoderState.DECODING


def test_input_finished_flushes_tail():
    decoder = make_decoder()
    _feed(decoder, [0, 0, 0, 0, 0, 7])
    assert decoder.get_result().is_empty

    decoder.input_finished()
    assert decoder.state == DecoderState.FINISHING
    decoder.decode()
    assert decoder.get_result().text == "7"
    assert decoder.stepper.exhausted

    # further decode calls stay harmless
    decoder.decode()
    assert decoder.get_result().text == "7"


def test_accept_after_input_finished_raises():
    decoder = make_decoder()
    decoder.input_finished()
    with pytest.raises(DecoderStateError) as exc:
        decoder.accept_waveform(SR, np.zeros(10, dtype=np.float32))
    assert exc.value.code == ErrorCode.INPUT_ALREADY_FINISHED


def test_state_transitions():
    decoder = make_decoder(endpoint_config=_endpoint(rule1=0.1))
    assert decoder.state == DecoderState.IDLE

    decoder.accept_waveform(SR, frames_to_samples([5] + [0] * 20))
    assert decoder.state == DecoderState.ACCEPTING

    decoder.decode()
    assert decoder.is_endpoint()
    assert decoder.state == DecoderState.ENDPOINTED

    decoder.reset()
    assert decoder.state == DecoderState.IDLE

    _feed(decoder, [0] * 4)
    assert decoder.state == DecoderState.DECODING


def test_reset_result_hides_committed_tokens():
    decoder = make_decoder()
    _feed(decoder, [5, 0, 9, 0])
    assert decoder.get_result().text == "5 9"

    decoder.reset_result()
    assert decoder.get_result().is_empty

    _feed(decoder, [0, 3, 0, 0])
    result = decoder.get_result()
    assert result.text == "3"
    assert result.timestamps == pytest.approx((0.05,))


def test_hidden_tokens_do_not_satisfy_endpoint_rules():
    decoder = make_decoder(endpoint_config=_endpoint(rule2=0.2))
    _feed(decoder, [4, 0, 0, 0])
    decoder.reset_result()

    _feed(decoder, [0] * 40)
    assert decoder.get_result().text == ""
    assert not decoder.is_endpoint()
    assert decoder.state == DecoderState.DECODING

    _feed(decoder, [6] + [0] * 23)
    assert decoder.get_result().text == "6"
    assert decoder.is_endpoint()


def test_result_hides_only_the_shared_part_of_a_diverged_prefix():
    decoder = make_decoder()
    _feed(decoder, [5, 0, 9, 0])
    decoder.reset_result()

    # best path now disagrees with the hidden (5, 9) after its first token
    decoder.beam = HypothesisBeam([Hypothesis(tokens=(5, 8, 3), score=-1.0, timestamps=(0, 4, 6))])
    result = decoder.get_result()
    assert result.tokens == (8, 3)
    assert result.text == "8 3"
    assert result.timestamps == pytest.approx((0.04, 0.06))


@pytest.mark.parametrize("setup", ["fresh", "decoded", "finished", "endpointed", "failed"])
def test_reset_is_idempotent_from_any_state(setup):
    model = ScriptedModel()
    decoder = make_decoder(model, endpoint_config=_endpoint(rule1=0.1))
    if setup == "decoded":
        _feed(decoder, [2, 0, 3, 0, 0, 0])
    elif setup == "finished":
        _feed(decoder, [2, 0, 3])
        decoder.input_finished()
        decoder.decode()
    elif setup == "endpointed":
        _feed(decoder, [2] + [0] * 19)
        assert decoder.is_endpoint()
    elif setup == "failed":
        model.fail_encoder = True
        decoder.accept_waveform(SR, frames_to_samples([1, 1, 1, 1]))
        with pytest.raises(ModelInferenceFailure):
            decoder.decode()
        model.fail_encoder = False

    decoder.reset()
    once = _snapshot(decoder)
    decoder.reset()
    assert _snapshot(decoder) == once

    fresh = make_decoder(ScriptedModel(), endpoint_config=_endpoint(rule1=0.1))
    assert once == _snapshot(fresh)
    assert once[1] == DecoderState.IDLE

    codes = [4, 0, 6, 0, 0, 0, 0, 0]
    _feed(decoder, codes)
    _feed(fresh, codes)
    assert decoder.get_result() == fresh.get_result()


def test_model_failure_requires_reset():
    model = ScriptedModel()
    decoder = make_decoder(model)
    _feed(decoder, [5, 0, 0, 0])

    model.fail_encoder = True
    decoder.accept_waveform(SR, frames_to_samples([1, 1, 1, 1]))
    with pytest.raises(ModelInferenceFailure):
        decoder.decode()
    assert decoder.failed

    model.fail_encoder = False
    with pytest.raises(DecoderStateError) as exc:
        decoder.decode()
    assert exc.value.code == ErrorCode.SESSION_FAILED

    decoder.reset()
    assert not decoder.failed
    _feed(decoder, [8, 0, 0, 0])
    assert decoder.get_result().text == "8"


def test_overflow_is_not_fatal(caplog):
    decoder = make_decoder(audio_config=AudioConfig(sample_rate=SR, max_buffer_s=0.1))
    # 50 frames pushed without a decode; only the newest 10 fit
    decoder.accept_waveform(SR, frames_to_samples([1] * 40 + [0, 0, 6, 0, 0, 0, 0, 0, 0, 0]))

    with caplog.at_level(logging.WARNING):
        decoder.decode()

    stats = decoder.stats
    assert stats.num_samples_received == 500
    assert stats.dropped_samples == 400
    assert stats.overflow_events == 1
    assert decoder.get_result().text == "6"
    assert ErrorCode.BUFFER_OVERFLOW.value in caplog.text

    _feed(decoder, [0, 7, 0, 0])
    assert decoder.get_result().text == "6 7"


@pytest.mark.parametrize("seed", [0, 4, 11])
def test_beam_of_one_matches_greedy_end_to_end(seed):
    audio = np.random.default_rng(seed).normal(size=4000).astype(np.float32)

    results = []
    for config in (
        DecoderConfig(method="greedy_search"),
        DecoderConfig(method="modified_beam_search", num_active_paths=1),
    ):
        decoder = make_decoder(RandomModel(seed=seed, blank_bias=0.0), decoder_config=config)
        for start in range(0, len(audio), 320):
            decoder.accept_waveform(SR, audio[start:start + 320])
            decoder.decode()
        decoder.input_finished()
        decoder.decode()
        results.append(decoder.get_result())

    assert results[0].tokens == results[1].tokens
    assert results[0].timestamps == results[1].timestamps


def test_wider_beam_keeps_bounded_paths():
    decoder = make_decoder(RandomModel(seed=2), num_active_paths=3)
    audio = np.random.default_rng(5).normal(size=2000).astype(np.float32)
    decoder.accept_waveform(SR, audio)
    decoder.decode()
    assert 1 <= len(decoder.beam) <= 3


def test_foreign_sample_rate_is_resampled():
    decoder = make_decoder()
    audio = np.zeros(4000, dtype=np.float32)
    for start in range(0, len(audio), 30):
        decoder.accept_waveform(2 * SR, audio[start:start + 30])
    # buffer-by-buffer resampling must not stretch the stream
    assert decoder.stats.num_samples_received == 2000


def test_stats_track_encoder_progress():
    decoder = make_decoder(ScriptedModel(segment_size=4, hop_size=2))
    _feed(decoder, [0] * 10)
    stats = decoder.stats
    assert stats.num_samples_received == 100
    assert stats.num_encoder_steps == 4
    assert stats.num_frames_processed == 8


def test_from_config():
    config = StreamingConfig()
    config.audio.sample_rate = SR
    config.decoder.method = "greedy_search"
    decoder = Decoder.from_config(ScriptedModel(), BlockFeatureExtractor(), None, config)
    assert decoder.search.beam_size == 1
    assert decoder.sample_buffer.capacity == SR * 30

    config.decoder.num_active_paths = 0
    with pytest.raises(InvalidConfiguration):
        Decoder.from_config(ScriptedModel(), BlockFeatureExtractor(), None, config)
