"""Headless CLI runtime wiring for Voice Dictation Studio."""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from collections.abc import Sequence

from dictation.app_config import AppConfig
from dictation.audio_format import FormatNegotiator, mime_type_for_bytes
from dictation.errors import DictationError, UnsupportedFormat
from dictation.http_client import close_shared_client
from dictation.models import AudioBlob, Credential, PermissionStatus, PipelineResult, RecordingState
from dictation.permission import PermissionGate
from dictation.pipeline import PipelineOrchestrator
from dictation.polish_client import PolishClient
from dictation.recording_controller import RecordingStateMachine
from dictation.transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Voice Dictation Studio (headless)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    key_group = parser.add_mutually_exclusive_group()
    key_group.add_argument("--api-key", default=None, help="API key (overrides OPENAI_API_KEY)")
    key_group.add_argument("--ask-key", action="store_true", help="Prompt for the API key if none is configured")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("dictate", help="Record from the microphone, then transcribe and polish")

    p_transcribe = sub.add_parser("transcribe", help="Transcribe (and polish) an audio file")
    p_transcribe.add_argument("file", help="Path to audio file")
    p_transcribe.add_argument("--no-polish", action="store_true", help="Only print the raw transcription")

    p_polish = sub.add_parser("polish", help="Polish a raw transcription")
    p_polish.add_argument("text", help="Raw text to polish")

    sub.add_parser("formats", help="Show audio format negotiation for this host")
    sub.add_parser("check-mic", help="Check microphone access")
    return parser


def _configure_logging(level_name: str, log_file: str = ""):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, str(level_name or "").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
    )


def resolve_credential(config: AppConfig, api_key: str | None = None, ask: bool = False) -> Credential | None:
    """Pick the credential once at startup: CLI flag, then environment, then prompt."""
    credential = config.credential(api_key)
    if credential is None and ask and sys.stdin.isatty():
        credential = config.credential(getpass.getpass("OpenAI API key: "))
    return credential


def _print_result(result: PipelineResult) -> int:
    if result.raw is not None:
        print("== Raw transcription ==")
        print(result.raw)
    if result.polished is not None:
        print("== Polished text ==")
        print(result.polished)
    sys.stdout.flush()
    if result.error is not None:
        print(f"[ERROR] {result.error.stage.value}: {result.error.message}", file=sys.stderr)
        return 1
    return 0


def _build_orchestrator(config: AppConfig) -> PipelineOrchestrator:
    return PipelineOrchestrator(TranscriptionClient(config=config), PolishClient(config=config))


async def cmd_dictate(config: AppConfig, credential: Credential | None) -> int:
    """Record until Enter is pressed, then print raw and polished text."""
    controller = None

    def on_state(_state: RecordingState):
        print(f"[INFO] {controller.status_text}", file=sys.stderr)

    controller = RecordingStateMachine(config, credential, on_state_changed=on_state)
    if not controller.can_record:
        print(f"[ERROR] {controller.status_text}", file=sys.stderr)
        return 1

    await controller.request_start()
    if controller.state == RecordingState.ERRORED:
        controller.acknowledge_error()
        return 1

    print("[INFO] Press Enter to stop.", file=sys.stderr)
    try:
        await asyncio.to_thread(sys.stdin.readline)
    finally:
        await controller.stop()
        await controller.wait_until_settled()

    if controller.state == RecordingState.ERRORED:
        controller.acknowledge_error()
        return 1
    if controller.last_result is None:
        print("[ERROR] Recording produced no result", file=sys.stderr)
        return 1
    return _print_result(controller.last_result)


async def cmd_transcribe(config: AppConfig, credential: Credential | None, file_path: str, polish: bool = True) -> int:
    """Run the pipeline on an audio file."""
    with open(file_path, "rb") as f:
        data = f.read()
    blob = AudioBlob(data=data, mime_type=mime_type_for_bytes(data), filename=os.path.basename(file_path))

    if polish:
        return _print_result(await _build_orchestrator(config).run(blob, credential))
    try:
        text = await TranscriptionClient(config=config).transcribe(blob, credential)
    except DictationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print(text)
    return 0


async def cmd_polish(config: AppConfig, credential: Credential | None, text: str) -> int:
    try:
        polished = await PolishClient(config=config).polish(text, credential)
    except DictationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print(polished)
    return 0


def cmd_formats(config: AppConfig) -> int:
    negotiator = FormatNegotiator(config.audio_formats)
    for mime_type, supported in negotiator.report():
        print(f"{mime_type:<28} {'supported' if supported else 'unsupported'}")
    try:
        selected = negotiator.select()
    except UnsupportedFormat as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print(f"Selected: {selected.mime_type}")
    return 0


async def cmd_check_mic(config: AppConfig) -> int:
    gate = PermissionGate(device=config.input_device, samplerate=config.sample_rate, channels=config.channels)
    status = await gate.check_permission()
    if status == PermissionStatus.GRANTED:
        print("Microphone access granted")
        return 0
    print("[ERROR] Microphone access denied or no input device found", file=sys.stderr)
    return 1


async def _dispatch(args, config: AppConfig, credential: Credential | None) -> int:
    try:
        if args.command == "dictate":
            return await cmd_dictate(config, credential)
        if args.command == "transcribe":
            return await cmd_transcribe(config, credential, args.file, polish=not args.no_polish)
        if args.command == "polish":
            return await cmd_polish(config, credential, args.text)
        if args.command == "formats":
            return cmd_formats(config)
        if args.command == "check-mic":
            return await cmd_check_mic(config)
        return 2
    finally:
        await close_shared_client()


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    config = AppConfig.from_env()
    _configure_logging(args.log_level or config.log_level, config.log_file)
    credential = resolve_credential(config, args.api_key, args.ask_key)
    logger.debug("Starting %s (mode=%s, credential=%s)", args.command, config.api_mode, "set" if credential else "missing")
    return asyncio.run(_dispatch(args, config, credential))
