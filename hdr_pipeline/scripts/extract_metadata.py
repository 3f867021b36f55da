"""
Extract Metadata - exposure table of a bracket

Prints width/height, exposure time, f-number and ISO of every image, ordered
by exposure time, and optionally saves the table as CSV and the full record
as JSON for the calibration tools.
"""
from __future__ import annotations

import argparse
from pathlib import Path

from hdrcal.services.metadata import extract_metadata, metadata_frame, write_metadata_json
from hdrcal.services.normalization import list_image_files


def main():
    parser = argparse.ArgumentParser(description="Show the exposure table of a bracket")
    parser.add_argument("--input", required=True, help="Input folder containing a single bracket set")
    parser.add_argument("--csv", help="Save the exposure table to this CSV file")
    parser.add_argument("--json", help="Save the full metadata record to this JSON file")
    args = parser.parse_args()

    image_paths = list_image_files(Path(args.input).resolve())
    if not image_paths:
        raise SystemExit(f"No images found in: {args.input}")

    metadata = extract_metadata(image_paths)
    table = metadata_frame(metadata)
    print(table.to_string(index=False))
    if table["exposure_time_s"].isna().any():
        print("warning: some images carry no exposure time, pass --exposure-times to the calibration tools")
    if args.csv:
        table.to_csv(args.csv, index=False)
        print(f"Saved: {args.csv}")
    if args.json:
        print(f"Saved: {write_metadata_json(metadata, Path(args.json))}")


if __name__ == "__main__":
    main()
