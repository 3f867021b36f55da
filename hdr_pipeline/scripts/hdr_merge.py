"""
Merge a bracket into an HDR image with a response curve saved earlier by
hdr_calibrate.py (--save-response). No self-calibration is run.
"""
from __future__ import annotations

import logging
from pathlib import Path

from hdrcal.errors import CalibrationError

from hdr_pipeline.scripts.hdr_calibrate import build_parser, collect_inputs, options_from_args, parse_times, process


def main():
    parser = build_parser("Merge a bracket into an HDR image using a saved response curve")
    parser.add_argument("--response-file", "-f", required=True, help="Response curves and weights to apply")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s: %(message)s")
    if not args.output and not args.save_response:
        raise SystemExit("Nothing to do: give --output and/or --save-response")
    try:
        result = process(
            collect_inputs(args.inputs),
            options_from_args(args, calibrate=False),
            exposure_times=parse_times(args.exposure_times),
            response_file=Path(args.response_file),
            save_response=Path(args.save_response) if args.save_response else None,
            output=Path(args.output) if args.output else None,
        )
    except CalibrationError as e:
        raise SystemExit(f"hdr_merge error: {e}")
    print(f"saturated pixels: {result.saturated}")


if __name__ == "__main__":
    main()
