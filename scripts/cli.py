"""
CLI to classify the mood of a recorded audio file -> JSON.
"""
from __future__ import annotations
import argparse, asyncio, json, logging, mimetypes, sys
from core.classifier import MoodClassifier
from core.config import Settings
from core.media import DeviceStreamSource, MediaStreamManager
from core.models import AudioPayload, MoodResult, PipelineState, Stage
from core.pipeline import PipelineOrchestrator
from core.recording import RecordingSession
from core.transcription import TranscriptionPipeline


async def analyze_file(path: str, settings: Settings) -> PipelineState:
    with open(path, "rb") as f:
        data = f.read()
    mime = mimetypes.guess_type(path)[0] or "application/octet-stream"

    # The microphone is never opened; only the remote stages run
    orchestrator = PipelineOrchestrator(
        RecordingSession(MediaStreamManager(DeviceStreamSource(settings))),
        TranscriptionPipeline(settings),
        MoodClassifier(settings),
    )
    async with orchestrator:
        state = await orchestrator.run_payload(AudioPayload(data=data, mime_type=mime))
    return state


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--audio", required=True, help="Path to input audio file")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    args = p.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    state = asyncio.run(analyze_file(args.audio, Settings()))
    if state.stage is not Stage.DONE:
        print(f"Analysis failed: {state.reason}", file=sys.stderr)
        sys.exit(1)
    result = MoodResult(transcript=state.transcript or "", mood=state.label or "")
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))

if __name__ == "__main__":
    main()
