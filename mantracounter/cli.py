#!/usr/bin/env python3
"""Command line mantra counter.

    mantracounter calibrate
    mantracounter record "om namah shivaya"
    mantracounter listen --mode pattern --template ~/.local/share/mantracounter/om_namah_shivaya_1.npy
    mantracounter listen --mode energy --profile mobile
    mantracounter test --reps 5
    mantracounter evaluate mantra-test-fixtures.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .constants import (
    CALIBRATION_TIME,
    DEBOUNCE_TIME_MS,
    FIXTURE_FILENAME,
    FRAME_SIZE,
    MATCH_COOLDOWN_MS,
    MIC_SENSITIVITY,
    MIN_ENVELOPE_WINDOWS,
    NOISE_GATE_MARGIN,
    SAMPLE_RATE,
    SIMILARITY_THRESHOLD,
    TEST_REPETITIONS,
)
from .detectors import DetectionSettings, EnergyDetector, PatternDetector
from .device_profile import PROFILES, DeviceProfile
from .fixtures import RunReport, evaluate_fixtures, load_fixtures, run_test, save_fixtures
from .noise_gate import calculate_noise_floor
from .sample_matcher import record_until_silence
from .session import MatchCounter, run_detection
from .template import Template
from .utils import data_dir, generate_template_id


def _record_ambient(args: argparse.Namespace):
    from sounddevice import rec, wait

    data = rec(
        int(args.seconds * args.sample_rate),
        samplerate=args.sample_rate,
        channels=1,
        device=args.device,
        dtype="float32",
    )
    wait()
    return data.reshape(-1)


def _profile(args: argparse.Namespace) -> DeviceProfile:
    if args.profile != "calibrated":
        return PROFILES[args.profile]
    print(f"Calibrating for {args.seconds:.1f} seconds, stay quiet...")
    floor = calculate_noise_floor(_record_ambient(args))
    profile = DeviceProfile.from_noise_floor(floor, args.margin)
    print(f"Noise floor: {floor:.6f}")
    return profile


def _record(args: argparse.Namespace, prompt: str) -> Template:
    input(f"{prompt} Press Enter, chant once, then stay silent…")
    raw = record_until_silence(args.device, sample_rate=args.sample_rate)
    template, trimmed = Template.from_recording(raw, args.sample_rate)
    print(
        f"  {trimmed.trimmed_duration:.1f}s "
        f"(trimmed {trimmed.silence_removed:.1f}s silence)"
    )
    return template


def _too_short(template: Template) -> bool:
    if template.envelope.size >= MIN_ENVELOPE_WINDOWS:
        return False
    print("Recording too short to use as a template. Try again.", file=sys.stderr)
    return True


def _print_report(report: RunReport) -> None:
    for result in report.results:
        mark = "✓" if result.passed else "✗"
        print(
            f"Rep {result.index}: {result.similarity * 100:.1f}% {mark} "
            f"(shape {result.diagnostics.shape:.2f}, "
            f"energy {result.diagnostics.energy_ratio:.2f}, "
            f"duration {result.duration:.1f}s)"
        )
    print(
        f"Passed: {report.passed}/{len(report.results)} "
        f"(threshold: {report.threshold * 100:.0f}%)"
    )
    print("✓ Test PASSED" if report.success else "✗ Test FAILED - Try adjusting threshold")


# ─── Commands ──────────────────────────────────────────────────────────────────


def cmd_calibrate(args: argparse.Namespace) -> int:
    profile = _profile(args)
    for name in ("loud_threshold", "transition_threshold", "silence_threshold", "min_energy_threshold"):
        print(f"  {name:<22}: {getattr(profile, name):.6f}")
    return 0


def cmd_record(args: argparse.Namespace) -> int:
    template = _record(args, "Recording mantra template.")
    if _too_short(template):
        return 2
    out_dir = Path(args.out) if args.out else data_dir()
    existing = [p.stem for p in out_dir.glob("*.npy")] if out_dir.exists() else []
    path = template.save(out_dir / f"{generate_template_id(args.name, existing)}.npy")
    print(f"Mantra saved: {template.duration:.1f}s -> {path}")
    return 0


def cmd_listen(args: argparse.Namespace) -> int:
    profile = _profile(args)
    if args.mode == "pattern":
        if not args.template:
            print("No template recorded. Record one first.", file=sys.stderr)
            return 2
        try:
            detector = PatternDetector(
                Template.load(args.template),
                DetectionSettings(args.threshold, args.debounce, args.cooldown),
                profile,
            )
        except ValueError as exc:
            print(f"Cannot use template {args.template}: {exc}", file=sys.stderr)
            return 2
        mode_name = "pattern matching"
    else:
        detector = EnergyDetector(profile)
        mode_name = "energy/breath"

    from .streams import SoundDeviceSource

    counter = MatchCounter()

    def on_match(score: float) -> None:
        counter(score)
        print(f"Count: {counter.count} ({score * 100:.0f}%)")

    print(f"Listening ({mode_name})... (Ctrl+C to stop)")
    try:
        with SoundDeviceSource(
            args.device,
            sample_rate=args.sample_rate,
            frame_size=args.frame_size,
            gain=args.gain,
        ) as source:
            run_detection(
                detector,
                source,
                on_match,
                lambda: True,
            )
    except KeyboardInterrupt:
        print(f"\nListening stopped. Total: {counter.count}")
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    profile = _profile(args)
    print("Step 1: Record your template mantra")
    template = _record(args, "Template.")
    if _too_short(template):
        return 2
    recordings = []
    for i in range(args.reps):
        print(f"Step {i + 2}: Record repetition {i + 1} of {args.reps}")
        input("Press Enter, chant once, then stay silent…")
        recordings.append(record_until_silence(args.device, sample_rate=args.sample_rate))
    report, fixtures = run_test(
        template,
        recordings,
        threshold=args.threshold,
        energy_gate=profile.energy_gate_threshold,
    )
    _print_report(report)
    if args.export is not None:
        save_fixtures(fixtures, args.export or None)
    return 0 if report.success else 1


def cmd_evaluate(args: argparse.Namespace) -> int:
    profile = _profile(args)
    fixtures = load_fixtures(args.fixtures)
    report = evaluate_fixtures(
        fixtures,
        threshold=args.threshold,
        energy_gate=profile.energy_gate_threshold,
    )
    _print_report(report)
    mismatched = [r.index for r in report.results if not r.agrees]
    if mismatched:
        print(f"Unexpected verdicts for repetitions: {mismatched}")
    return 0 if not mismatched else 1


# ─── Argument parsing ──────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mantracounter", description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--device", type=int, default=None, help="input device index")
    parser.add_argument("--sample-rate", type=int, default=SAMPLE_RATE)
    sub = parser.add_subparsers(dest="command", required=True)

    def add_profile_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--profile", choices=[*PROFILES, "calibrated"], default="desktop")
        p.add_argument("--seconds", type=float, default=CALIBRATION_TIME, help="calibration time")
        p.add_argument("--margin", type=float, default=NOISE_GATE_MARGIN)

    p = sub.add_parser("calibrate", help="measure the ambient noise floor")
    add_profile_args(p)
    p.set_defaults(func=cmd_calibrate, profile="calibrated")

    p = sub.add_parser("record", help="record and save a mantra template")
    p.add_argument("name", nargs="?", default="mantra")
    p.add_argument("--out", default=None, help="directory for the template file")
    p.set_defaults(func=cmd_record)

    p = sub.add_parser("listen", help="count repetitions from the microphone")
    p.add_argument("--mode", choices=("energy", "pattern"), default="energy")
    p.add_argument("--template", default=None, help="template .npy for pattern mode")
    p.add_argument("--threshold", type=float, default=SIMILARITY_THRESHOLD)
    p.add_argument("--debounce", type=int, default=DEBOUNCE_TIME_MS, help="milliseconds")
    p.add_argument("--cooldown", type=int, default=MATCH_COOLDOWN_MS, help="milliseconds")
    p.add_argument("--gain", type=float, default=MIC_SENSITIVITY, help="mic sensitivity")
    p.add_argument("--frame-size", type=int, default=FRAME_SIZE)
    add_profile_args(p)
    p.set_defaults(func=cmd_listen)

    p = sub.add_parser("test", help="score recorded repetitions against a template")
    p.add_argument("--reps", type=int, default=TEST_REPETITIONS)
    p.add_argument("--threshold", type=float, default=SIMILARITY_THRESHOLD)
    p.add_argument(
        "--export",
        nargs="?",
        const="",
        default=None,
        help=f"export fixtures (default {FIXTURE_FILENAME} in the data directory)",
    )
    add_profile_args(p)
    p.set_defaults(func=cmd_test)

    p = sub.add_parser("evaluate", help="replay an exported fixture file")
    p.add_argument("fixtures")
    p.add_argument("--threshold", type=float, default=SIMILARITY_THRESHOLD)
    add_profile_args(p)
    p.set_defaults(func=cmd_evaluate)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
