"""
Rescale relative radiance maps to absolute luminance: the value --src-y in
the input becomes --dest-y (e.g. cd/m^2) in the output. Maps that are
already absolute are copied through unchanged.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from hdrcal.errors import CalibrationError
from hdrcal.services.filters import ABSOLUTE, DISPLAY, RELATIVE, HDRFrame, LUMINANCE_TAG, apply_absolute
from hdrcal.services.hdr_io import read_radiance, write_radiance

from hdr_pipeline.scripts.hdr_gamma import output_path


logger = logging.getLogger("hdr_absolute")


def run(
    inputs: List[Path],
    dest_y: float,
    src_y: float = 1.0,
    luminance_type: Optional[str] = RELATIVE,
    suffix: str = "_abs",
    output_dir: Optional[Path] = None,
) -> List[HDRFrame]:
    frames = []
    for path in inputs:
        tags = {LUMINANCE_TAG: luminance_type} if luminance_type else {}
        frame = apply_absolute(HDRFrame(read_radiance(path), tags), dest_y, src_y)
        out = write_radiance(frame.data, output_path(path, suffix, output_dir))
        logger.info("%s -> %s", path.name, out)
        frames.append(frame)
    return frames


def main():
    parser = argparse.ArgumentParser(description="Convert relative radiance maps to absolute luminance")
    parser.add_argument("inputs", nargs="+", help="Radiance maps to rescale")
    parser.add_argument("--dest-y", "-d", type=float, required=True, help="Luminance the source level maps to")
    parser.add_argument("--src-y", "-s", type=float, default=1.0, help="Source level in input units")
    parser.add_argument("--luminance-type", choices=[RELATIVE, ABSOLUTE, DISPLAY], default=RELATIVE,
                        help="What the input values represent")
    parser.add_argument("--suffix", default="_abs", help="Appended to each output file name")
    parser.add_argument("--output-dir", "-o", help="Folder for the outputs (default: next to each input)")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s: %(message)s")
    try:
        run(
            [Path(p) for p in args.inputs],
            args.dest_y,
            src_y=args.src_y,
            luminance_type=args.luminance_type,
            suffix=args.suffix,
            output_dir=Path(args.output_dir) if args.output_dir else None,
        )
    except (CalibrationError, IOError) as e:
        raise SystemExit(f"hdr_absolute error: {e}")


if __name__ == "__main__":
    main()
