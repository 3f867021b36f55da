"""
Gamma-correct saved radiance maps: gamma > 1 encodes linear radiance for
display, --inverse linearizes display-referred data. All inputs go through
one filter, so tag warnings are reported once for the whole set.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from hdrcal.errors import CalibrationError
from hdrcal.services.filters import ABSOLUTE, DISPLAY, RELATIVE, GammaFilter, HDRFrame, LUMINANCE_TAG
from hdrcal.services.hdr_io import read_radiance, write_radiance


logger = logging.getLogger("hdr_gamma")

LUMINANCE_TYPES = [RELATIVE, ABSOLUTE, DISPLAY]


def output_path(path: Path, suffix: str, output_dir: Optional[Path]) -> Path:
    folder = output_dir if output_dir is not None else path.parent
    return folder / f"{path.stem}{suffix}{path.suffix}"


def run(
    inputs: List[Path],
    gamma: float,
    multiplier: float = 1.0,
    inverse: bool = False,
    luminance_type: Optional[str] = RELATIVE,
    suffix: str = "_gamma",
    output_dir: Optional[Path] = None,
) -> List[HDRFrame]:
    gamma_filter = GammaFilter.inverse(gamma, multiplier) if inverse else GammaFilter(gamma, multiplier)
    frames = []
    for path in inputs:
        tags = {LUMINANCE_TAG: luminance_type} if luminance_type else {}
        frame = gamma_filter(HDRFrame(read_radiance(path), tags))
        out = write_radiance(frame.data, output_path(path, suffix, output_dir))
        logger.info("%s -> %s (%s)", path.name, out, frame.luminance_type)
        frames.append(frame)
    return frames


def main():
    parser = argparse.ArgumentParser(description="Apply gamma correction to radiance maps (.hdr, .pfm, .exr, .npy)")
    parser.add_argument("inputs", nargs="+", help="Radiance maps to correct")
    parser.add_argument("--gamma", "-g", type=float, default=1.0, help="Gamma value, > 1 encodes for display")
    parser.add_argument("--mul", "-m", type=float, default=1.0, help="Multiply values before gamma correction")
    parser.add_argument("--inverse", action="store_true", help="Apply 1/gamma (linearize display data)")
    parser.add_argument("--luminance-type", choices=LUMINANCE_TYPES, default=RELATIVE,
                        help="What the input values represent")
    parser.add_argument("--suffix", default="_gamma", help="Appended to each output file name")
    parser.add_argument("--output-dir", "-o", help="Folder for the outputs (default: next to each input)")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s: %(message)s")
    try:
        run(
            [Path(p) for p in args.inputs],
            args.gamma,
            multiplier=args.mul,
            inverse=args.inverse,
            luminance_type=args.luminance_type,
            suffix=args.suffix,
            output_dir=Path(args.output_dir) if args.output_dir else None,
        )
    except (CalibrationError, IOError) as e:
        raise SystemExit(f"hdr_gamma error: {e}")


if __name__ == "__main__":
    main()
