import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from pose_config import AppConfig, load_config
from pose_detection import DetectorPool
from pose_errors import (
    DetectorBusyError,
    DetectorInitError,
    DetectorRunError,
    DetectorTimeoutError,
    ImageDecodeError,
)
from pose_types import PoseDocument
from skeleton_mapping import map_detections
from visualization import render_png

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INIT_FAILED = 2
EXIT_BAD_INPUT = 3
EXIT_TIMEOUT = 4
EXIT_DETECTION_FAILED = 5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pose-control",
        description="Detect body, hand and face landmarks and render an OpenPose control image.",
    )
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("image", nargs="?", help="Input image file")
    src.add_argument("--render-json", metavar="FILE", help="Render a saved OpenPose JSON document instead of detecting")
    parser.add_argument("--json", metavar="PATH", help="Write the OpenPose JSON document here")
    parser.add_argument("--png", metavar="PATH", help="Write the skeleton image here")
    parser.add_argument(
        "--per-person",
        action="store_true",
        help="Write one image per detected person (PATH gets a _<n> suffix)",
    )
    parser.add_argument("--size", type=int, help="Canvas size in pixels")
    parser.add_argument("--padding", type=int, help="Canvas padding in pixels")
    parser.add_argument("--no-body", action="store_true", help="Do not draw body bones")
    parser.add_argument("--no-face", action="store_true", help="Do not draw head bones and face points")
    parser.add_argument("--no-hands", action="store_true", help="Do not draw hands")
    parser.add_argument("--timeout", type=float, help="Per-detector timeout in seconds")
    parser.add_argument(
        "--face-layout",
        choices=["mediapipe", "openpose70"],
        default="mediapipe",
        help="Face keypoints in the JSON output: full 478-point mesh or the 70-point OpenPose face",
    )
    parser.add_argument("--config", metavar="PATH", help="JSON config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    render = cfg.render
    if args.size is not None and args.size > 0:
        render = replace(render, canvas_size=args.size)
    if args.padding is not None and args.padding >= 0:
        render = replace(render, padding=args.padding)
    render = replace(
        render,
        draw_body=render.draw_body and not args.no_body,
        draw_face=render.draw_face and not args.no_face,
        draw_hands=render.draw_hands and not args.no_hands,
    )
    detector = cfg.detector
    if args.timeout is not None and args.timeout > 0:
        detector = replace(detector, timeout_seconds=args.timeout)
    return AppConfig(detector=detector, render=render)


async def analyze_image(image_path: str, cfg: AppConfig, pool: Optional[DetectorPool] = None) -> PoseDocument:
    own_pool = pool is None
    pool = pool or DetectorPool(cfg.detector)
    try:
        raw = await pool.detect(image_path)
    finally:
        if own_pool:
            pool.close()
    return map_detections(raw)


def _person_path(path: Path, index: int) -> Path:
    return path.with_name(f"{path.stem}_{index}{path.suffix or '.png'}")


def write_outputs(doc: PoseDocument, cfg: AppConfig, args: argparse.Namespace) -> List[Path]:
    written: List[Path] = []
    if args.json:
        out = Path(args.json)
        out.write_text(doc.to_json(face_layout=args.face_layout, indent=2), encoding="utf-8")
        written.append(out)
    if args.png:
        r = cfg.render
        opts = dict(
            size=r.canvas_size,
            padding=r.padding,
            draw_body=r.draw_body,
            draw_face=r.draw_face,
            draw_hands=r.draw_hands,
        )
        out = Path(args.png)
        if args.per_person:
            for i, person in enumerate(doc.people):
                p = _person_path(out, i)
                p.write_bytes(render_png([person], **opts))
                written.append(p)
        else:
            out.write_bytes(render_png(doc.people, **opts))
            written.append(out)
    return written


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = apply_overrides(load_config(args.config), args)

    if args.render_json:
        try:
            data = json.loads(Path(args.render_json).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Error: cannot read pose JSON {args.render_json}: {e}", file=sys.stderr)
            return EXIT_BAD_INPUT
        doc = PoseDocument.from_dict(data)
    else:
        try:
            doc = asyncio.run(analyze_image(args.image, cfg))
        except DetectorInitError as e:
            logger.debug("Detector init failure", exc_info=True)
            print(f"Error: cannot initialize pose analysis ({e.detector} detector unavailable).", file=sys.stderr)
            return EXIT_INIT_FAILED
        except ImageDecodeError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_BAD_INPUT
        except (DetectorTimeoutError, DetectorBusyError) as e:
            print(f"Error: {e}. Try again with a smaller image.", file=sys.stderr)
            return EXIT_TIMEOUT
        except DetectorRunError as e:
            logger.debug("Detector run failure", exc_info=True)
            print(f"Error: pose analysis failed ({e}).", file=sys.stderr)
            return EXIT_DETECTION_FAILED

    if not doc.people:
        logger.info("No people detected")
    for path in write_outputs(doc, cfg, args):
        logger.info("Wrote %s", path)
    if not args.json and not args.png:
        print(doc.to_json(face_layout=args.face_layout))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
