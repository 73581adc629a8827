#!/usr/bin/env python3
"""
CLI for trying the scanner on a still image or a live camera
"""

import click
from pathlib import Path
import cv2
import numpy as np
import logging
import sys
from typing import Optional

from livescan.aligner import PerspectiveAligner
from livescan.anchors import AnchorDetector
from livescan.bubbles import BubbleReader
from livescan.capture import CameraSource
from livescan.config import DEFAULT_CONFIG, ScannerConfig
from livescan.errors import DeviceError, LayoutError
from livescan.layout import load_layout, load_answer_key
from livescan.session import SessionController, SessionState
from livescan.stabilizer import detect_answer

logger = logging.getLogger(__name__)

PREVIEW_WINDOW = "livescan"


def build_config(threshold: Optional[float], frames: Optional[int],
                 interval: Optional[float] = None, scale: Optional[float] = None) -> ScannerConfig:
    return DEFAULT_CONFIG.with_overrides(
        marking_threshold=threshold,
        confirmation_frames=frames,
        tick_interval=interval,
        alignment_scale=scale,
    )


def visualize_detection(image_path: Path, detector: AnchorDetector, anchors, output_path: Path):
    """Draw every circular candidate in blue and the selected anchors in green"""
    img = cv2.imread(str(image_path))
    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)

    for candidate in detector.find_candidates(gray):
        center = (int(round(candidate.center.x)), int(round(candidate.center.y)))
        radius = int(round(np.sqrt(candidate.area / np.pi)))
        cv2.circle(img, center, radius, (255, 0, 0), 2)

    if anchors:
        pts = np.array([(p.x, p.y) for p in anchors], dtype=np.int32)
        cv2.polylines(img, [pts], True, (0, 255, 0), 2)
        for label, p in zip(("TL", "TR", "BR", "BL"), anchors):
            cv2.putText(img, label, (int(p.x) + 8, int(p.y) - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 0), 2)

    cv2.imwrite(str(output_path), img)
    logger.info(f"Visualization saved to {output_path}")


def draw_preview(frame: np.ndarray, state: SessionState) -> np.ndarray:
    preview = frame.copy()
    for p in state.detected_anchors:
        cv2.circle(preview, (int(p.x), int(p.y)), 7, (0, 0, 255), -1)
    cv2.putText(preview, state.status_message, (10, preview.shape[0] - 15),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 255), 2)
    return preview


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Log every frame')
def cli(verbose: bool):
    """Live answer-sheet scanner"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s - %(message)s'
    )


@cli.command()
@click.argument('image_path', type=click.Path(exists=True, path_type=Path))
@click.argument('layout_path', type=click.Path(exists=True, path_type=Path))
@click.option('--threshold', type=float, help='Fill ratio above which a bubble counts as marked')
@click.option('--scale', type=float, help='Aligned pixels per layout unit')
@click.option('--visualize', is_flag=True, help='Save visualization of detection')
@click.option('--output', type=click.Path(path_type=Path), help='Output path for visualization')
def detect(image_path: Path, layout_path: Path, threshold: Optional[float],
           scale: Optional[float], visualize: bool, output: Optional[Path]):
    """Read the bubbles of a single image"""
    config = build_config(threshold, None, scale=scale)
    layout = load_layout(layout_path)

    img = cv2.imread(str(image_path))
    if img is None:
        raise click.ClickException(f"Could not load image: {image_path}")

    detector = AnchorDetector(config)
    anchors = detector.find_anchors(img)

    if visualize:
        if output is None:
            output = image_path.parent / f"{image_path.stem}_detected.png"
        visualize_detection(image_path, detector, anchors, output)

    if anchors is None:
        raise click.ClickException("Could not find the 4 anchors")

    alignment = PerspectiveAligner(config).align(anchors, layout)
    if alignment is None:
        raise click.ClickException("Anchors do not form a usable quadrilateral")

    reader = BubbleReader(config)
    filling = reader.read(alignment.warp(img), layout, alignment.content_offset, scale=alignment.scale)

    logger.info(f"Anchors: {', '.join(f'({p.x:.0f}, {p.y:.0f})' for p in anchors)}")
    for question_id, options in filling.items():
        answer = detect_answer(options, config.marking_threshold) or "blank"
        ratios = " ".join(f"{value}={ratio:.2f}" for value, ratio in options.items())
        click.echo(f"  {question_id}: {answer:<6} {ratios}")


@cli.command()
@click.argument('layout_path', type=click.Path(exists=True, path_type=Path))
@click.argument('answers_path', type=click.Path(exists=True, path_type=Path))
@click.option('--camera', default='0', help='Camera index or video file')
@click.option('--output-dir', type=click.Path(path_type=Path), default=Path('corrections'),
              help='Where results and snapshots are written')
@click.option('--threshold', type=float, help='Fill ratio above which a bubble counts as marked')
@click.option('--frames', type=int, help='Identical frames needed to confirm a question')
@click.option('--interval', type=float, help='Seconds between frames')
@click.option('--preview/--no-preview', default=True, help='Show the camera feed')
@click.option('--yes', is_flag=True, help='Confirm the first stable reading without asking')
def scan(layout_path: Path, answers_path: Path, camera: str, output_dir: Path,
         threshold: Optional[float], frames: Optional[int], interval: Optional[float],
         preview: bool, yes: bool):
    """Grade a sheet held in front of the camera"""
    config = build_config(threshold, frames, interval)
    device = int(camera) if camera.isdigit() else camera

    session = None

    def show(frame: np.ndarray, state: SessionState):
        cv2.imshow(PREVIEW_WINDOW, draw_preview(frame, state))
        if cv2.waitKey(1) & 0xFF == ord('q'):
            session.stop()

    def save(result, snapshots):
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "results.json").write_text(result.to_json())
        snapshots.save(output_dir)
        logger.info(f"Results written to {output_dir}")

    try:
        session = SessionController(
            load_layout(layout_path), load_answer_key(answers_path),
            CameraSource(device, config), config,
            on_result=save, on_frame=show if preview else None,
        )
    except LayoutError as e:
        raise click.ClickException(str(e))

    with session:
        try:
            while True:
                snapshots = session.scan()
                if snapshots is None:
                    logger.warning("Scan stopped before every question was confirmed")
                    sys.exit(1)

                for question_id, state in session.statuses.items():
                    reading = state.stable_reading or "blank"
                    click.echo(f"  {question_id}: {reading:<6} {state.status.value}")
                stats = session.state.stats
                click.echo(f"Correct: {stats.correct}  Incorrect: {stats.incorrect}  Nullified: {stats.nullified}")

                if yes or click.confirm("Confirm this correction?", default=True):
                    session.confirm()
                    break
                session.retry()
        except DeviceError as e:
            raise click.ClickException(str(e))
        finally:
            if preview:
                cv2.destroyAllWindows()


if __name__ == "__main__":
    cli()
