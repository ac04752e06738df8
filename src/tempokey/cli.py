#!/usr/bin/env python3
"""
Batch tempo/key analysis from the command line.

Entrypoint: tempokey PATH [PATH ...]

- Directories are scanned recursively for supported audio files
- Each file is decoded, then analyzed in its own worker process
- Results are logged, printed (text or JSON), and optionally written
  back into the file's tags
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tempokey.config import Config, ConfigError
from tempokey.decode import AubioDecoder, DecodeError, discover_audio_files
from tempokey.models import Key
from tempokey.worker import analyze_many, build_request, failure_response

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"


def _id3_key(label: str) -> str:
    """ID3 TKEY notation: 'A# Minor' -> 'A#m', 'C Major' -> 'C'."""
    key = Key.parse(label)
    return key.root + ("m" if key.mode == "minor" else "")


def _write_tags(file_path: str, bpm: Optional[int] = None, key: Optional[str] = None) -> bool:
    """
    Write BPM and key to tags (ID3 for MP3, MP4 atoms for M4A, Vorbis comments for FLAC).

    Args:
        file_path: Path to audio file.
        bpm: BPM value (optional).
        key: Key label, e.g. 'F# Minor' (optional).

    Returns:
        True if tags were written.
    """
    file_ext = Path(file_path).suffix.lower()

    try:
        if file_ext in [".m4a", ".mp4", ".aac"]:
            from mutagen.mp4 import MP4

            audio = MP4(file_path)
            if bpm:
                audio["tmpo"] = [int(bpm)]
            if key:
                audio["\xa9key"] = [key]
            audio.save()

        elif file_ext in [".mp3"]:
            from mutagen.id3 import ID3, ID3NoHeaderError, TBPM, TKEY

            try:
                audio = ID3(file_path)
            except ID3NoHeaderError:
                audio = ID3()
            if bpm:
                audio.setall("TBPM", [TBPM(encoding=3, text=[str(int(bpm))])])
            if key:
                audio.setall("TKEY", [TKEY(encoding=3, text=[_id3_key(key)])])
            audio.save(file_path)

        elif file_ext in [".flac"]:
            from mutagen.flac import FLAC

            audio = FLAC(file_path)
            if bpm:
                audio["bpm"] = str(int(bpm))
            if key:
                audio["initialkey"] = key
            audio.save()

        else:
            logger.debug(f"Unsupported format for tagging: {file_ext}")
            return False

    except Exception as e:
        logger.warning(f"Could not write tags to {file_path}: {e}")
        return False

    logger.debug(f"Tags written for {Path(file_path).name}")
    return True


def analyze_files(
    files: List[Path],
    decoder: AubioDecoder,
    config: Config,
    on_result: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> List[Dict[str, Any]]:
    """
    Decode files one at a time and analyze them in worker processes.

    Decoding happens just before a request is submitted, so at most
    `max_workers` decoded signals are held at once.

    Args:
        files: Audio files to analyze
        decoder: AudioDecoder capability
        config: Config (worker timeout, concurrency, strategies)
        on_result: Called with each result as it is reported

    Returns:
        Worker responses with `file` added, in report order
    """
    results: List[Dict[str, Any]] = []
    paths_by_id: Dict[str, Path] = {}

    def report(response: Dict[str, Any], file_path: Path) -> None:
        response["file"] = str(file_path)
        results.append(response)
        if on_result is not None:
            on_result(response)

    def requests():
        for file_path in files:
            request_id = uuid.uuid4().hex[:16]
            try:
                signal = decoder(file_path)
            except DecodeError as e:
                report(failure_response(request_id, str(e)), file_path)
                continue
            paths_by_id[request_id] = file_path
            yield build_request(signal, request_id)

    analyze_many(
        requests(),
        timeout_seconds=config.get("worker", "timeout_seconds"),
        max_workers=config.get("worker", "max_workers"),
        config=config,
        on_response=lambda response: report(response, paths_by_id.pop(response["request_id"])),
    )
    return results


def collect_files(paths: List[str]) -> List[Path]:
    files: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(discover_audio_files(str(path)))
        elif path.is_file():
            files.append(path)
        else:
            logger.warning(f"Path not found: {raw}")
    return files


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Estimate tempo (BPM) and musical key of audio files")
    parser.add_argument("paths", nargs="+", help="Audio files or directories to scan")
    parser.add_argument("--config", help="Path to tempokey.toml (default: $TEMPOKEY_CONFIG_PATH)")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--write-tags", action="store_true", help="Write BPM/key tags into analyzed files")
    parser.add_argument("--workers", type=int, help="Concurrent analyses (overrides config)")
    parser.add_argument("--timeout", type=float, help="Per-file timeout in seconds (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Batch analysis entrypoint."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    try:
        config = Config.load(args.config)
        if args.workers is not None:
            config["worker"]["max_workers"] = args.workers
        if args.timeout is not None:
            config["worker"]["timeout_seconds"] = args.timeout
        config = Config(config.data)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    files = collect_files(args.paths)
    if not files:
        logger.warning("No audio files found!")
        return 0

    max_seconds = max(config.get("tempo", "max_analysis_seconds"), config.get("key", "max_analysis_seconds"))
    decoder = AubioDecoder(max_duration=max_seconds)

    logger.info(f"🔍 Analyzing {len(files)} file(s) with {config.get('worker', 'max_workers')} worker(s)...")

    done = 0

    def on_result(response: Dict[str, Any]) -> None:
        nonlocal done
        done += 1
        name = Path(response["file"]).name
        if response["success"]:
            logger.info(f"  [{done}/{len(files)}] ✅ {name}: {response['tempo_bpm']} BPM, Key: {response['key']}")
            if args.write_tags:
                _write_tags(response["file"], response["tempo_bpm"], response["key"])
        else:
            logger.warning(f"  [{done}/{len(files)}] ✗ {name}: {response['error']}")

    try:
        results = analyze_files(files, decoder, config, on_result=on_result)
    except KeyboardInterrupt:
        logger.warning("Analysis interrupted by user")
        return 130

    succeeded = sum(1 for r in results if r["success"])
    failed = len(results) - succeeded

    logger.info("=" * 60)
    logger.info(f"📊 Analyzed: {succeeded}  Failed: {failed}  Total: {len(results)}")
    logger.info("=" * 60)

    if args.json:
        print(json.dumps(results, indent=2))
    else:
        for r in results:
            if r["success"]:
                print(f"{r['file']}\t{r['tempo_bpm']}\t{r['key']}")
            else:
                print(f"{r['file']}\tERROR\t{r['error']}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
