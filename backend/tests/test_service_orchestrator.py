import os
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from mastering.errors import FinalizationError, MasteringError, PreconditionError, ProcessTimeout
from mastering.models.audio import AudioStatus
from mastering.services.orchestrator import create_orchestrator, error_message_for
from mastering.services.persistence import AudioFileStore
from mastering.utils.process import ProcessResult

from .fakes import FakeRunner

INPUT = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x01" * 10 * 1024
EQ_PRESET = {"enabled": True, "bass": 3, "treble": -2}


class FakeEQEngine:
    def __init__(self, storage, config, error=None):
        self.temp_directory = storage.path(config.eq_temp_directory)
        self.error = error
        self.calls = 0

    def enhance(self, input_path, settings):
        self.calls += 1
        if self.error:
            raise self.error
        out = self.temp_directory / f"{input_path.stem}_processed_1_abcdef12{input_path.suffix}"
        out.write_bytes(b"EQ:" + input_path.read_bytes())
        return out


def files_under(root: Path):
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())


@pytest.fixture
def store(session_factory):
    return AudioFileStore(session_factory)


@pytest.fixture
def build(session_factory, storage, config):
    def _build(runner=None, eq_engine=None, **overrides):
        cfg = replace(config, **overrides)
        return create_orchestrator(
            cfg,
            session_factory=session_factory,
            storage=storage,
            runner=runner or FakeRunner(),
            eq_engine=eq_engine or FakeEQEngine(storage, cfg),
        )

    return _build


def test_eq_disabled_tool_succeeds(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)

    outcome = build().run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.COMPLETED
    assert audio_file.mastered_path == outcome.mastered_path
    assert audio_file.ai_only_path is None
    assert audio_file.error_message is None
    assert storage.path(audio_file.mastered_path).read_bytes() == b"MASTERED:" + INPUT

    metadata = audio_file.metadata_
    assert metadata["eq_applied"] is False
    assert metadata["ai_mastering_mode"] == "tool"
    assert metadata["output_size"] == len(INPUT) + len(b"MASTERED:")
    assert metadata["original_size"] == len(INPUT)
    assert metadata["original_format"] == "wav"
    assert metadata["output_format"] == "wav"
    assert metadata["job_id"] == outcome.job_id

    assert files_under(storage.path("audio/mastered")) == [storage.path(audio_file.mastered_path)]
    assert files_under(storage.path("temp")) == []


def test_eq_enabled_keeps_ai_only_version(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq=EQ_PRESET)

    outcome = build().run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.COMPLETED
    assert outcome.eq_applied is True
    assert storage.path(audio_file.mastered_path).read_bytes() == b"EQ:MASTERED:" + INPUT
    assert storage.path(audio_file.ai_only_path).read_bytes() == b"MASTERED:" + INPUT
    assert audio_file.metadata_["eq_applied"] is True
    assert audio_file.metadata_["ai_only_path"] == audio_file.ai_only_path
    assert audio_file.metadata_["eq_settings"] == {
        "enabled": True, "bass": 3.0, "low_mid": 0.0, "mid": 0.0, "high_mid": 0.0, "treble": -2.0,
    }

    assert len(files_under(storage.path("audio/mastered"))) == 2
    assert files_under(storage.path("temp")) == []


def test_eq_applied_without_retention_leaves_no_stage1_temp(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq=EQ_PRESET)

    build(keep_ai_only_version=False).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.ai_only_path is None
    assert files_under(storage.path("audio/mastered")) == [storage.path(audio_file.mastered_path)]
    assert files_under(storage.path("temp")) == []


def test_tool_unavailable_passthrough_is_byte_identical(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    runner = FakeRunner(version=FileNotFoundError("aimastering"))

    build(runner=runner).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.COMPLETED
    assert storage.path(audio_file.mastered_path).read_bytes() == INPUT
    assert audio_file.metadata_["ai_mastering_mode"] == "passthrough"


def test_eq_engine_failure_degrades_to_stage1(build, store, storage, config, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq=EQ_PRESET)
    engine = FakeEQEngine(storage, config, error=RuntimeError("EQ engine crashed"))

    build(eq_engine=engine).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert engine.calls == 1
    assert audio_file.status == AudioStatus.COMPLETED
    assert audio_file.metadata_["eq_applied"] is False
    assert audio_file.metadata_["eq_error"] == "EQ engine crashed"
    assert audio_file.ai_only_path is None
    assert storage.path(audio_file.mastered_path).read_bytes() == b"MASTERED:" + INPUT
    assert files_under(storage.path("temp")) == []


def test_invalid_preset_settings_do_not_fail_the_job(build, store, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq={"enabled": True, "bass": "loud"})

    build().run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.COMPLETED
    assert audio_file.metadata_["eq_applied"] is False
    assert "bass" in audio_file.metadata_["eq_error"]


def test_tool_failure_marks_failed_and_cleans_up(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)

    def fail_with_partial_output(args):
        Path(args[args.index("--output") + 1]).write_bytes(b"half a file")
        return ProcessResult(2, "", "Error: decoder failure at 00:01:23\n")

    with pytest.raises(MasteringError):
        build(runner=FakeRunner(master=fail_with_partial_output)).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert "Error: decoder failure at 00:01:23" in audio_file.error_message
    assert audio_file.error_message.startswith("AI mastering failed:")
    assert audio_file.mastered_path is None
    assert audio_file.metadata_["failure"]["stage"] == "ai_mastering"
    assert audio_file.metadata_["failure"]["error_class"] == "MasteringError"
    assert files_under(storage.path("temp")) == []
    assert files_under(storage.path("audio/mastered")) == []


def test_missing_input_fails_before_processing(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(create_input=False)
    runner = FakeRunner()

    with pytest.raises(PreconditionError):
        build(runner=runner).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert "does not exist" in audio_file.error_message
    assert audio_file.metadata_["failure"]["stage"] == "precondition"
    assert runner.calls == []
    assert not storage.path("audio/mastered").exists()
    assert not storage.path("temp").exists()


def test_finalization_failure_removes_final_outputs(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq=EQ_PRESET)
    orchestrator = build()
    real_finalize = orchestrator.lifecycle.finalize

    def finalize(temp_path, final_relative):
        if final_relative.endswith("_ai_only.wav"):
            raise FinalizationError("Failed to move processed audio: disk full")
        return real_finalize(temp_path, final_relative)

    orchestrator.lifecycle.finalize = finalize

    with pytest.raises(FinalizationError):
        orchestrator.run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert audio_file.error_message == "Failed to move processed audio: disk full"
    assert files_under(storage.path("audio/mastered")) == []
    assert files_under(storage.path("temp")) == []


def test_redelivery_after_failure_is_restartable(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    failing = FakeRunner(master=ProcessResult(1, "", "tool crashed"))

    with pytest.raises(MasteringError):
        build(runner=failing).run(audio_file_id)
    first = store.get(audio_file_id)

    with pytest.raises(MasteringError):
        build(runner=failing).run(audio_file_id)
    second = store.get(audio_file_id)

    assert first.status == second.status == AudioStatus.FAILED
    assert first.error_message == second.error_message
    assert first.metadata_["failure"]["job_id"] != second.metadata_["failure"]["job_id"]
    assert files_under(storage.path("temp")) == []
    assert files_under(storage.path("audio/mastered")) == []

    outcome = build().run(audio_file_id)

    recovered = store.get(audio_file_id)
    assert recovered.status == AudioStatus.COMPLETED
    assert recovered.error_message is None
    assert files_under(storage.path("audio/mastered")) == [storage.path(outcome.mastered_path)]
    assert files_under(storage.path("temp")) == []


def test_completed_file_is_not_processed_again(build, store, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    first = build().run(audio_file_id)
    runner = FakeRunner()

    again = build(runner=runner).run(audio_file_id)

    assert again.status == "completed"
    assert again.job_id is None
    assert again.mastered_path == first.mastered_path
    assert runner.calls == []


def test_error_message_for_unexpected_errors():
    assert error_message_for(RuntimeError("boom")) == "Unexpected error: boom"
    assert error_message_for(PreconditionError("Input file does not exist: /x")) == "Input file does not exist: /x"
    assert len(error_message_for(RuntimeError("x" * 2000))) == 500


def test_stage1_timeout_marks_failed_and_cleans_up(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)

    def hang_then_get_killed(args):
        Path(args[args.index("--output") + 1]).write_bytes(b"partial")
        raise ProcessTimeout("aimastering master", 300)

    with pytest.raises(MasteringError):
        build(runner=FakeRunner(master=hang_then_get_killed)).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert audio_file.error_message == "AI mastering timed out after 300s"
    assert audio_file.metadata_["failure"]["stage"] == "ai_mastering"
    assert files_under(storage.path("temp")) == []
    assert files_under(storage.path("audio/mastered")) == []


def test_uncreatable_output_directory_marks_failed(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    # A regular file where the output directory's parent should be
    storage.path("blocked").write_bytes(b"not a directory")
    runner = FakeRunner()

    with pytest.raises(PreconditionError):
        build(runner=runner, output_directory="blocked/mastered").run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert audio_file.error_message.startswith("Output directory could not be created")
    assert audio_file.metadata_["failure"]["stage"] == "prepare"
    assert runner.calls == []
    assert files_under(storage.path("temp")) == []


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores directory permissions")
def test_unwritable_output_directory_marks_failed(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    output_dir = storage.path("audio/mastered")
    output_dir.mkdir(parents=True)
    output_dir.chmod(0o500)
    try:
        with pytest.raises(PreconditionError):
            build().run(audio_file_id)
    finally:
        output_dir.chmod(0o700)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert audio_file.error_message.startswith("Output directory is not writable")
    assert files_under(storage.path("temp")) == []


def test_unreadable_input_fails_before_processing(build, store, storage, make_audio_file):
    audio_file_id = make_audio_file(INPUT)
    runner = FakeRunner()

    with patch("mastering.services.orchestrator.os.access", return_value=False):
        with pytest.raises(PreconditionError):
            build(runner=runner).run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.FAILED
    assert audio_file.error_message.startswith("Input file is not readable")
    assert runner.calls == []
    assert not storage.path("temp").exists()


def test_non_mapping_eq_block_completes_with_eq_error(build, store, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq="flat")

    outcome = build().run(audio_file_id)

    audio_file = store.get(audio_file_id)
    assert audio_file.status == AudioStatus.COMPLETED
    assert outcome.eq_applied is False
    assert audio_file.metadata_["eq_applied"] is False
    assert audio_file.metadata_["eq_settings"] == {}
    assert "expected a mapping" in audio_file.metadata_["eq_error"]


def test_stage_timings_are_measured_per_stage(build, store, make_audio_file):
    audio_file_id = make_audio_file(INPUT, post_eq=EQ_PRESET)

    build().run(audio_file_id)

    metadata = store.get(audio_file_id).metadata_
    assert 0 <= metadata["ai_processing_time"] <= metadata["processing_time"]
    assert 0 <= metadata["eq_processing_time"] <= metadata["processing_time"]
