from typing import List, Optional

import httpx
import pytest

from app.core.config import MB
from app.core.errors import ConfigurationError, ProviderError
from app.features.transcription.providers.assemblyai import AssemblyAIProvider
from app.features.transcription.providers.deepgram import DeepgramProvider
from app.features.transcription.providers.whisper import WhisperProvider
from app.features.transcription.services import RetryPolicy, TranscriptionOrchestrator

from fakes import ScriptedProvider, permanent, transient


def _orchestrator(*providers, retries: int = 3, sleeps: Optional[List[float]] = None) -> TranscriptionOrchestrator:
    recorded = sleeps if sleeps is not None else []
    return TranscriptionOrchestrator(
        providers,
        policy=RetryPolicy(retries=retries, base_delay=1.0, max_delay=15.0),
        sleep=recorded.append,
    )


def _standard(**outcomes):
    return (
        ScriptedProvider("openai", outcomes.get("openai"), max_bytes=25 * MB),
        ScriptedProvider("deepgram", outcomes.get("deepgram")),
        ScriptedProvider("assemblyai", outcomes.get("assemblyai")),
    )


def test_small_file_goes_to_the_size_limited_provider_first(media_file) -> None:
    whisper, deepgram, assembly = _standard()
    result = _orchestrator(whisper, deepgram, assembly).transcribe(media_file(size=10 * MB), "a.mp3")
    assert result.provider == "openai"
    assert result.attempts == 1
    assert whisper.calls == ["a.mp3"]
    assert deepgram.calls == [] and assembly.calls == []


def test_large_file_skips_the_size_limited_provider(media_file) -> None:
    whisper, deepgram, assembly = _standard()
    result = _orchestrator(whisper, deepgram, assembly).transcribe(media_file(size=40 * MB), "a.mp3")
    assert result.provider == "deepgram"
    assert whisper.calls == []


def test_retries_are_exhausted_before_falling_back(media_file) -> None:
    sleeps: List[float] = []
    whisper, deepgram, assembly = _standard(openai=[transient("openai")], deepgram=["from deepgram"])
    result = _orchestrator(whisper, deepgram, assembly, sleeps=sleeps).transcribe(media_file(), "a.mp3")
    assert result.provider == "deepgram"
    assert result.text == "from deepgram"
    # 1 tentative + 3 retries
    assert len(whisper.calls) == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_transient_error_then_success_stays_on_the_same_provider(media_file) -> None:
    whisper, deepgram, _ = _standard(openai=[transient("openai"), transient("openai"), "third time"])
    result = _orchestrator(whisper, deepgram).transcribe(media_file(), "a.mp3")
    assert result.text == "third time"
    assert result.attempts == 3
    assert deepgram.calls == []


def test_permanent_error_advances_without_retry(media_file) -> None:
    sleeps: List[float] = []
    whisper, deepgram, _ = _standard(openai=[permanent("openai")])
    result = _orchestrator(whisper, deepgram, sleeps=sleeps).transcribe(media_file(), "a.mp3")
    assert result.provider == "deepgram"
    assert len(whisper.calls) == 1
    assert sleeps == []


def test_last_provider_error_is_raised_when_all_fail(media_file) -> None:
    whisper, deepgram, assembly = _standard(
        openai=[permanent("openai", "bad audio")],
        deepgram=[permanent("deepgram", "HTTP 401")],
        assemblyai=[permanent("assemblyai", "AssemblyAI error: corrupt")],
    )
    with pytest.raises(ProviderError) as exc:
        _orchestrator(whisper, deepgram, assembly).transcribe(media_file(), "a.mp3")
    assert exc.value.provider == "assemblyai"
    assert str(exc.value) == "AssemblyAI error: corrupt"


def test_explicit_hint_never_falls_back(media_file) -> None:
    whisper, deepgram, assembly = _standard(deepgram=[permanent("deepgram")])
    with pytest.raises(ProviderError):
        _orchestrator(whisper, deepgram, assembly).transcribe(media_file(), "a.mp3", hint="deepgram")
    assert whisper.calls == [] and assembly.calls == []
    assert len(deepgram.calls) == 1


def test_explicit_hint_bypasses_priority(media_file) -> None:
    whisper, deepgram, assembly = _standard()
    result = _orchestrator(whisper, deepgram, assembly).transcribe(media_file(), "a.mp3", hint="AssemblyAI")
    assert result.provider == "assemblyai"
    assert whisper.calls == []


def test_unknown_hint_behaves_as_auto(media_file) -> None:
    whisper, deepgram, assembly = _standard()
    result = _orchestrator(whisper, deepgram, assembly).transcribe(media_file(), "a.mp3", hint="rev.ai")
    assert result.provider == "openai"


def test_explicit_hint_over_the_size_limit_is_a_permanent_error(media_file) -> None:
    whisper, deepgram, _ = _standard()
    with pytest.raises(ProviderError) as exc:
        _orchestrator(whisper, deepgram).transcribe(media_file(size=40 * MB), "a.mp3", hint="openai")
    assert exc.value.transient is False
    assert "exceeds openai limit 25MB" in str(exc.value)
    assert whisper.calls == [] and deepgram.calls == []


def test_explicit_unconfigured_provider_is_a_configuration_error(media_file) -> None:
    whisper, _, _ = _standard()
    deepgram = ScriptedProvider("deepgram", configured=False)
    with pytest.raises(ConfigurationError, match="deepgram provider not configured"):
        _orchestrator(whisper, deepgram).transcribe(media_file(), "a.mp3", hint="deepgram")


def test_no_configured_provider_is_a_configuration_error(media_file) -> None:
    providers = [ScriptedProvider(name, configured=False) for name in ("openai", "deepgram", "assemblyai")]
    orchestrator = _orchestrator(*providers)
    assert orchestrator.any_configured() is False
    with pytest.raises(ConfigurationError):
        orchestrator.transcribe(media_file(), "a.mp3")


def test_unconfigured_providers_are_skipped_in_auto(media_file) -> None:
    whisper = ScriptedProvider("openai", configured=False, max_bytes=25 * MB)
    deepgram = ScriptedProvider("deepgram", configured=False)
    assembly = ScriptedProvider("assemblyai", ["from assembly"])
    result = _orchestrator(whisper, deepgram, assembly).transcribe(media_file(), "a.mp3")
    assert result.provider == "assemblyai"


def test_only_a_size_limited_provider_and_a_large_file(media_file) -> None:
    whisper = ScriptedProvider("openai", max_bytes=25 * MB)
    deepgram = ScriptedProvider("deepgram", configured=False)
    with pytest.raises(ProviderError, match="exceeds"):
        _orchestrator(whisper, deepgram).transcribe(media_file(size=40 * MB), "a.mp3")


def test_backoff_is_exponential_and_capped() -> None:
    policy = RetryPolicy(retries=10, base_delay=1.0, max_delay=15.0)
    delays = [policy.delay(n) for n in range(6)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 15.0, 15.0]


def test_zero_retries_means_a_single_attempt(media_file) -> None:
    sleeps: List[float] = []
    whisper, deepgram, _ = _standard(openai=[transient("openai")])
    _orchestrator(whisper, deepgram, retries=0, sleeps=sleeps).transcribe(media_file(), "a.mp3")
    assert len(whisper.calls) == 1
    assert sleeps == []


def test_from_settings_orders_providers_by_priority(make_settings) -> None:
    settings = make_settings(
        OPENAI_API_KEY="sk",
        DEEPGRAM_API_KEY="dg",
        TRANSCRIPTION_RETRIES=2,
        RETRY_BASE_DELAY_MS=500,
        RETRY_MAX_DELAY_MS=4000,
        ASSEMBLYAI_POLL_MS=100,
    )
    orchestrator = TranscriptionOrchestrator.from_settings(settings)
    assert [p.name for p in orchestrator.providers] == ["openai", "deepgram", "assemblyai"]
    assert isinstance(orchestrator.get("openai"), WhisperProvider)
    assert isinstance(orchestrator.get("deepgram"), DeepgramProvider)
    assembly = orchestrator.get("assemblyai")
    assert isinstance(assembly, AssemblyAIProvider)
    assert assembly.is_configured() is False
    # intervalle de polling plancher
    assert assembly.poll_interval == 1.5
    assert orchestrator.get("openai").max_bytes == 25 * MB
    assert orchestrator.policy == RetryPolicy(retries=2, base_delay=0.5, max_delay=4.0)


def test_malformed_provider_body_still_falls_back(media_file) -> None:
    assembly = AssemblyAIProvider(
        api_key="aai-key",
        poll_interval=0.01,
        total_timeout=5,
        request_timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
    )
    backup = ScriptedProvider("deepgram", ["from deepgram"])
    result = _orchestrator(assembly, backup).transcribe(media_file(), "a.mp3")
    assert result.provider == "deepgram"
