from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from hdrcal.config import CalibrationOptions
from hdrcal.errors import CalibrationError
from hdrcal.services.alignment import align_levels
from hdrcal.services.calibration import MergeResult, load_calibration, merge_exposures, save_calibration
from hdrcal.services.hdr_io import write_radiance
from hdrcal.services.metadata import extract_metadata
from hdrcal.services.normalization import build_exposure_lists, list_image_files, load_levels
from hdrcal.services.upload_pipeline import resolve_exposure_times


logger = logging.getLogger("hdr_calibrate")


def collect_inputs(inputs: List[str]) -> List[Path]:
    paths: List[Path] = []
    for item in inputs:
        p = Path(item)
        paths.extend(list_image_files(p) if p.is_dir() else [p])
    if not paths:
        raise SystemExit("No images given")
    return paths


def process(
    paths: List[Path],
    options: CalibrationOptions,
    exposure_times: Optional[List[float]] = None,
    response_file: Optional[Path] = None,
    save_response: Optional[Path] = None,
    output: Optional[Path] = None,
) -> MergeResult:
    metadata = extract_metadata(paths)
    times = resolve_exposure_times(metadata["images"], exposure_times, options.use_aperture_iso)
    for p, t in zip(paths, times):
        logger.info("frame %s, exposure=%s", p.name, t)

    images = load_levels(paths, options.bpp)
    if options.align and len(images) > 1:
        images, _ = align_levels(images, len(images) // 2)
    channels = build_exposure_lists(images, times, options.luminance)
    logger.info("calibrating channels: %s", "LUMINANCE" if options.luminance else "RGB")
    logger.info("number of input levels: %d", options.levels)

    calibration = None
    if response_file is not None:
        calibration = load_calibration(response_file, list(channels), options.levels)
    result = merge_exposures(channels, options, calibration)

    if save_response is not None:
        save_calibration(save_response, result.responses, result.weights)
    if output is not None:
        write_radiance(result.radiance, output)
    return result


def build_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("inputs", nargs="+", help="Bracket images, or a folder holding a single bracket set")
    parser.add_argument("--exposure-times", help="Comma separated exposure times in input order (overrides EXIF)")
    parser.add_argument("--luminance", "-Y", action="store_true", help="Calibrate the luminance channel only")
    parser.add_argument("--bpp", "-b", type=int, default=8, help="Bits per pixel of the input images (8..16)")
    parser.add_argument("--weighting", choices=["composite", "gauss"], default="composite")
    parser.add_argument("--gauss", "-g", type=float, default=0.2, help="Sigma of the Gaussian weights, relative (0:1]")
    parser.add_argument("--min-response", type=int, help="Lowest camera output level trusted by the weights")
    parser.add_argument("--max-response", type=int, help="Highest camera output level trusted by the weights")
    parser.add_argument("--fill-gaps", action="store_true", help="Interpolate response levels never observed")
    parser.add_argument("--align", action="store_true", help="MTB-align the bracket before merging")
    parser.add_argument("--aperture-iso", action="store_true", help="Scale exposure times by ISO and aperture")
    parser.add_argument("--save-response", "-s", help="Write the response curves and weights to this file")
    parser.add_argument("--output", "-o", help="Radiance map to write (.hdr, .pfm, .exr or .npy)")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def options_from_args(args: argparse.Namespace, calibrate: bool, response: str = "linear",
                      max_iterations: int = 100, epsilon: float = 1e-5) -> CalibrationOptions:
    output_format = Path(args.output).suffix.lstrip(".").lower() if args.output else "hdr"
    return CalibrationOptions(
        bpp=args.bpp,
        luminance=args.luminance,
        weighting=args.weighting,
        sigma=args.gauss,
        response=response,
        calibrate=calibrate,
        min_response=args.min_response,
        max_response=args.max_response,
        max_iterations=max_iterations,
        epsilon=epsilon,
        fill_gaps=args.fill_gaps,
        align=args.align,
        use_aperture_iso=args.aperture_iso,
        output_format=output_format,
    )


def parse_times(text: Optional[str]) -> Optional[List[float]]:
    if not text:
        return None
    try:
        return [float(t) for t in text.split(",") if t.strip()]
    except ValueError:
        raise SystemExit(f"Invalid exposure times: {text}")


def main():
    parser = build_parser("Recover the camera response (Robertson02) and merge a bracket into an HDR image")
    parser.add_argument("--calibration", "-c", choices=["robertson", "none"], default="robertson",
                        help="Self-calibration method, 'none' only applies the response")
    parser.add_argument("--response", "-r", choices=["linear", "gamma", "log"], default="linear",
                        help="Initial (or, without calibration, final) standard response")
    parser.add_argument("--response-file", "-f", help="Use the response curves saved in this file (disables calibration)")
    parser.add_argument("--max-iterations", type=int, default=100)
    parser.add_argument("--epsilon", type=float, default=1e-5)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s: %(message)s")
    try:
        options = options_from_args(
            args,
            calibrate=args.calibration == "robertson" and not args.response_file,
            response=args.response,
            max_iterations=args.max_iterations,
            epsilon=args.epsilon,
        )
        result = process(
            collect_inputs(args.inputs),
            options,
            exposure_times=parse_times(args.exposure_times),
            response_file=Path(args.response_file) if args.response_file else None,
            save_response=Path(args.save_response) if args.save_response else None,
            output=Path(args.output) if args.output else None,
        )
    except CalibrationError as e:
        raise SystemExit(f"hdr_calibrate error: {e}")
    print(f"saturated pixels: {result.saturated}")


if __name__ == "__main__":
    main()
