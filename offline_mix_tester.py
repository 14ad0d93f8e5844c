#!/usr/bin/env python
"""Render a voice + instrumental mixdown locally, without DB/service dependencies."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from vocalflow.jobs.functions import MediaFetcher
from vocalflow.renderers.offline_mixer import MixResult, OfflineMixer


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mix a vocal take over an instrumental and write a 16-bit WAV."
    )
    parser.add_argument("voice", help="Voice track: local path or http(s) URL.")
    parser.add_argument("instrumental", help="Instrumental track: local path or http(s) URL.")
    parser.add_argument("--voice-gain", type=float, default=None, help="Voice gain (default from settings).")
    parser.add_argument(
        "--instrumental-gain",
        type=float,
        default=None,
        help="Instrumental gain (default from settings).",
    )
    parser.add_argument("--sample-rate", type=int, default=None, help="Output sample rate.")
    parser.add_argument("--channels", type=int, default=None, choices=[1, 2], help="Output channel count.")
    parser.add_argument(
        "--output-audio",
        default=None,
        help="Output WAV path (default: ./offline_mix_outputs/mixdown.wav).",
    )
    parser.add_argument(
        "--output-summary-json",
        default=None,
        help="Output JSON summary path (default: next to output audio).",
    )
    return parser.parse_args()


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


class LocalOrRemoteFetcher(MediaFetcher):
    """Reads local paths from disk and defers URLs to the HTTP fetcher."""

    async def fetch(self, url: str) -> bytes:
        if _is_url(url):
            return await super().fetch(url)
        return await asyncio.to_thread(Path(url).expanduser().read_bytes)


def _resolve_output_audio_path(output_audio: str | None) -> Path:
    if output_audio:
        p = Path(output_audio).expanduser().resolve()
        if not p.suffix:
            p = p.with_suffix(".wav")
        return p
    return Path("offline_mix_outputs").resolve() / "mixdown.wav"


def _resolve_output_summary_path(output_summary_json: str | None, output_audio_path: Path) -> Path:
    if output_summary_json:
        return Path(output_summary_json).expanduser().resolve()
    return output_audio_path.with_name(f"{output_audio_path.stem}_summary.json")


async def _render(args: argparse.Namespace) -> MixResult:
    mixer = OfflineMixer(
        LocalOrRemoteFetcher(),
        sample_rate=args.sample_rate,
        channels=args.channels,
    )
    return await mixer.render(args.voice, args.instrumental, args.voice_gain, args.instrumental_gain)


def main() -> int:
    args = parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    for source in (args.voice, args.instrumental):
        if not _is_url(source) and not Path(source).expanduser().is_file():
            raise FileNotFoundError(f"Input track does not exist: {source}")

    result = asyncio.run(_render(args))

    output_audio_path = _resolve_output_audio_path(args.output_audio)
    output_summary_path = _resolve_output_summary_path(args.output_summary_json, output_audio_path)

    output_audio_path.parent.mkdir(parents=True, exist_ok=True)
    output_audio_path.write_bytes(result.audio_bytes)

    summary = {
        "voice": args.voice,
        "instrumental": args.instrumental,
        "voice_gain": args.voice_gain,
        "instrumental_gain": args.instrumental_gain,
        "output_audio": {
            "path": str(output_audio_path),
            "mime": result.mime,
            "sample_rate": result.sample_rate,
            "channels": result.channels,
            "frames": result.frames,
            "length_ms": result.length_ms,
            "bytes": len(result.audio_bytes),
        },
    }
    output_summary_path.parent.mkdir(parents=True, exist_ok=True)
    output_summary_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")

    print(f"[OK] Rendered mix: {output_audio_path}")
    print(f"[OK] Summary: {output_summary_path}")
    print(f"[OK] Length: {result.length_ms} ms @ {result.sample_rate} Hz x{result.channels}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
