"""
Unit tests for PipelineOrchestrator.

Tests cover:
- Envelope validation before any stage runs
- Text and audio inputs, correlation id handling
- The language gate
- Stage failures mapped to stage-tagged responses
- Timings and the projection handed to the diagnose stage
"""

import pytest

from clinical_pipeline.errors import SchemaViolationError, StageFailure
from clinical_pipeline.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    failure_outcome,
    generate_correlation_id,
)
from clinical_pipeline.services.transcription_service import TranscriptionResult

EXTRACTION = {"symptoms": ["fiebre", "tos"], "onsetDays": 3, "riskFlags": []}
DIAGNOSIS = {
    "summary": "Orientativo: probable cuadro viral.",
    "differentials": ["gripe"],
    "recommendations": ["hidratación"],
    "severity": "low",
}


class FixedClock:
    """Returns the given readings in order."""

    def __init__(self, readings):
        self.readings = list(readings)

    def __call__(self):
        return self.readings.pop(0)


@pytest.fixture
def orchestrator(settings, transcriber, extractor, diagnoser):
    extractor.extract.return_value = dict(EXTRACTION)
    diagnoser.diagnose.return_value = dict(DIAGNOSIS)
    return PipelineOrchestrator(
        settings, transcriber, extractor, diagnoser, id_factory=lambda: "corr-generated"
    )


def _text_body(**input_fields):
    return {"input": {"text": "Paciente de 34 años con fiebre y tos hace 3 días", **input_fields}}


class TestEnvelopeValidation:

    @pytest.mark.asyncio
    async def test_unknown_shape(self, orchestrator, transcriber, extractor, diagnoser):
        outcome = await orchestrator.run({"foo": "bar"})

        assert outcome.status_code == 400
        assert outcome.body["ok"] is False
        assert outcome.body["step"] == "validation"
        assert outcome.body["details"]
        transcriber.transcribe.assert_not_called()
        extractor.extract.assert_not_called()
        diagnoser.diagnose.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_text(self, orchestrator, extractor):
        outcome = await orchestrator.run({"input": {"text": ""}})

        assert outcome.status_code == 400
        assert outcome.body["step"] == "validation"
        extractor.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_audio_source_type(self, orchestrator, transcriber):
        outcome = await orchestrator.run({"input": {"audio": {"type": "ftp", "value": "x"}}})

        assert outcome.status_code == 400
        transcriber.transcribe.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_provider_option(self, orchestrator, extractor):
        outcome = await orchestrator.run({**_text_body(), "options": {"provider": "claude"}})

        assert outcome.status_code == 400
        extractor.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_object_body(self, orchestrator):
        outcome = await orchestrator.run(["not", "an", "object"])

        assert outcome.status_code == 400
        assert outcome.body["step"] == "validation"


class TestTextInput:

    @pytest.mark.asyncio
    async def test_success(self, orchestrator, transcriber, extractor, diagnoser):
        outcome = await orchestrator.run(_text_body(language="es-AR", correlationId="corr-1"))

        assert outcome.status_code == 200
        assert outcome.ok
        body = outcome.body
        assert body["transcript"] == "Paciente de 34 años con fiebre y tos hace 3 días"
        assert body["extracted"] == EXTRACTION
        assert body["diagnosis"] == DIAGNOSIS
        assert body["correlationId"] == "corr-1"
        assert body["provider"] == "gemini"
        assert set(body["pipeline"]["timingsMs"]) == {"transcribe", "extract", "diagnose", "total"}

        transcriber.transcribe.assert_not_called()
        extractor.extract.assert_awaited_once_with({
            "transcript": "Paciente de 34 años con fiebre y tos hace 3 días",
            "language": "es-AR",
            "correlationId": "corr-1",
        })
        diagnose_request = diagnoser.diagnose.call_args.args[0]
        assert diagnose_request["language"] == "es-AR"
        assert diagnose_request["correlationId"] == "corr-1"

    @pytest.mark.asyncio
    async def test_generated_correlation_id(self, orchestrator, extractor):
        outcome = await orchestrator.run(_text_body())

        assert outcome.body["correlationId"] == "corr-generated"
        assert extractor.extract.call_args.args[0]["correlationId"] == "corr-generated"

    @pytest.mark.asyncio
    async def test_default_language(self, orchestrator, extractor):
        await orchestrator.run(_text_body())

        assert extractor.extract.call_args.args[0]["language"] == "es-AR"

    @pytest.mark.asyncio
    async def test_empty_correlation_id_kept(self, orchestrator, extractor):
        outcome = await orchestrator.run(_text_body(correlationId=""))

        assert outcome.body["correlationId"] == ""
        assert extractor.extract.call_args.args[0]["correlationId"] == ""

    @pytest.mark.asyncio
    async def test_provider_option_selects_diagnose_backend(self, orchestrator, diagnoser):
        outcome = await orchestrator.run({**_text_body(), "options": {"provider": "openai"}})

        assert outcome.body["provider"] == "openai"
        assert diagnoser.diagnose.call_args.kwargs["provider"] == "openai"

    @pytest.mark.asyncio
    async def test_runs_are_independent(self, orchestrator):
        body = _text_body(correlationId="corr-1")

        first = await orchestrator.run(body)
        second = await orchestrator.run(body)

        assert first.body["extracted"] == second.body["extracted"]
        assert first.body["diagnosis"] == second.body["diagnosis"]


class TestLanguageGate:

    @pytest.mark.asyncio
    async def test_unsupported_language(self, orchestrator, extractor, diagnoser):
        outcome = await orchestrator.run(_text_body(language="fr-FR", correlationId="corr-2"))

        assert outcome.status_code == 400
        assert outcome.body == {"ok": False, "error": "unsupported language", "correlationId": "corr-2"}
        extractor.extract.assert_not_called()
        diagnoser.diagnose.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_language_rejected(self, orchestrator, extractor, diagnoser):
        outcome = await orchestrator.run(_text_body(language="", correlationId="corr-6"))

        assert outcome.status_code == 400
        assert outcome.body == {"ok": False, "error": "unsupported language", "correlationId": "corr-6"}
        extractor.extract.assert_not_called()
        diagnoser.diagnose.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("language", ["en", "EN-us", "es_MX"])
    async def test_supported_variants(self, orchestrator, language):
        outcome = await orchestrator.run(_text_body(language=language))

        assert outcome.status_code == 200

    @pytest.mark.asyncio
    async def test_detected_language_wins(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="I have a cough", language="en")
        body = {"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}, "language": "es-AR"}}

        outcome = await orchestrator.run(body)

        assert outcome.status_code == 200
        assert extractor.extract.call_args.args[0]["language"] == "en"

    @pytest.mark.asyncio
    async def test_detected_unsupported_language(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="J'ai de la fièvre", language="fr")
        body = {"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}, "language": "es"}}

        outcome = await orchestrator.run(body)

        assert outcome.status_code == 400
        assert outcome.body["error"] == "unsupported language"
        extractor.extract.assert_not_called()


class TestAudioInput:

    @pytest.mark.asyncio
    async def test_transcript_flows_downstream(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="Tos seca", language="")
        body = {
            "input": {
                "audio": {"type": "base64", "value": "AAAA"},
                "filename": "consulta.webm",
                "language": "es-AR",
                "correlationId": "corr-3",
            }
        }

        outcome = await orchestrator.run(body)

        assert outcome.status_code == 200
        assert outcome.body["transcript"] == "Tos seca"
        sent = transcriber.transcribe.call_args.args[0]
        assert sent.filename == "consulta.webm"
        assert sent.correlationId == "corr-3"
        assert extractor.extract.call_args.args[0] == {
            "transcript": "Tos seca",
            "language": "es-AR",
            "correlationId": "corr-3",
        }

    @pytest.mark.asyncio
    async def test_default_language_when_nothing_detected(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="Tos", language="")

        outcome = await orchestrator.run({"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}}})

        assert outcome.status_code == 200
        assert extractor.extract.call_args.args[0]["language"] == "es-AR"

    @pytest.mark.asyncio
    async def test_caller_language_when_nothing_detected(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="Cough", language="")
        body = {"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}, "language": "en-GB"}}

        await orchestrator.run(body)

        assert extractor.extract.call_args.args[0]["language"] == "en-GB"

    @pytest.mark.asyncio
    async def test_generated_id_reaches_transcriber(self, orchestrator, transcriber):
        transcriber.transcribe.return_value = TranscriptionResult(text="Tos", language="es")

        await orchestrator.run({"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}}})

        assert transcriber.transcribe.call_args.args[0].correlationId == "corr-generated"

    @pytest.mark.asyncio
    async def test_empty_transcription(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.return_value = TranscriptionResult(text="", language="es")

        outcome = await orchestrator.run(
            {"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}, "correlationId": "corr-4"}}
        )

        assert outcome.status_code == 500
        assert outcome.body["step"] == "transcribe"
        assert outcome.body["correlationId"] == "corr-4"
        extractor.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_transcriber_raises(self, orchestrator, transcriber, extractor):
        transcriber.transcribe.side_effect = ValueError("Could not download audio: 404")

        outcome = await orchestrator.run({"input": {"audio": {"type": "url", "value": "https://x/a.mp3"}}})

        assert outcome.status_code == 500
        assert outcome.body == {
            "ok": False,
            "step": "unknown",
            "error": "Could not download audio: 404",
            "correlationId": "corr-generated",
        }
        extractor.extract.assert_not_called()


class TestStageFailures:

    @pytest.mark.asyncio
    async def test_extract_failure(self, orchestrator, extractor, diagnoser):
        extractor.extract.side_effect = SchemaViolationError(
            "extract", [{"path": "patient.age", "message": "200 is greater than the maximum of 130"}], "corr-5"
        )

        outcome = await orchestrator.run(_text_body(correlationId="corr-5"))

        assert outcome.status_code == 500
        assert outcome.body["step"] == "unknown"
        assert "patient.age" in outcome.body["error"]
        assert outcome.body["correlationId"] == "corr-5"
        diagnoser.diagnose.assert_not_called()

    @pytest.mark.asyncio
    async def test_diagnose_failure(self, orchestrator, diagnoser):
        diagnoser.diagnose.side_effect = StageFailure("diagnose", "Model did not return valid JSON")

        outcome = await orchestrator.run(_text_body())

        assert outcome.status_code == 500
        assert outcome.body["step"] == "unknown"
        assert outcome.body["error"] == "Model did not return valid JSON"

    @pytest.mark.asyncio
    async def test_exception_without_message(self, orchestrator, diagnoser):
        diagnoser.diagnose.side_effect = RuntimeError()

        outcome = await orchestrator.run(_text_body())

        assert outcome.body["error"] == "Unexpected error"


class TestTimingsAndProjection:

    @pytest.mark.asyncio
    async def test_timings(self, settings, transcriber, extractor, diagnoser):
        extractor.extract.return_value = dict(EXTRACTION)
        diagnoser.diagnose.return_value = dict(DIAGNOSIS)
        clock = FixedClock([0.0, 0.0, 0.010, 0.010, 0.250, 0.250, 1.0, 1.0])
        orchestrator = PipelineOrchestrator(settings, transcriber, extractor, diagnoser, clock=clock)

        outcome = await orchestrator.run(_text_body())

        assert outcome.body["pipeline"]["timingsMs"] == {
            "transcribe": 10,
            "extract": 240,
            "diagnose": 750,
            "total": 1000,
        }

    @pytest.mark.asyncio
    async def test_timings_never_negative(self, settings, transcriber, extractor, diagnoser):
        extractor.extract.return_value = dict(EXTRACTION)
        diagnoser.diagnose.return_value = dict(DIAGNOSIS)
        clock = FixedClock([5.0, 5.0, 4.0, 4.0, 3.0, 3.0, 2.0, 1.0])
        orchestrator = PipelineOrchestrator(settings, transcriber, extractor, diagnoser, clock=clock)

        outcome = await orchestrator.run(_text_body())

        assert all(v == 0 for v in outcome.body["pipeline"]["timingsMs"].values())

    @pytest.mark.asyncio
    async def test_projection_fills_lists(self, orchestrator, extractor, diagnoser):
        extractor.extract.return_value = {"patient": {"age": 70}, "symptoms": None}

        await orchestrator.run(_text_body())

        assert diagnoser.diagnose.call_args.args[0]["extraction"] == {
            "patient": {"age": 70},
            "symptoms": [],
            "riskFlags": [],
            "onsetDays": None,
            "notes": None,
        }


class TestHelpers:

    def test_correlation_id_format(self):
        first = generate_correlation_id()
        second = generate_correlation_id()

        assert first.startswith("corr-")
        assert len(first.split("-")) == 3
        assert first != second

    def test_failure_outcome_without_correlation_id(self):
        outcome = failure_outcome(StageFailure("transcribe", "boom"))

        assert outcome.status_code == 500
        assert outcome.body == {"ok": False, "step": "transcribe", "error": "boom"}
