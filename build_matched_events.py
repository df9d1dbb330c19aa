# build_matched_events.py
"""
Builds the matched storm events file used by the report.

Loads the NOAA Storm Events details files, assigns every event its nearest
top-N city and writes the result to Parquet. Optionally downloads the yearly
files from NCEI first:

    python build_matched_events.py --download 2022 2023 --workers 4
"""
import argparse
import glob
import logging
import os
import re
import sys
import time

import pandas as pd
import requests
from pandera.errors import SchemaError, SchemaErrors

from config import (
    CITIES_PATH,
    DATA_DIR,
    DEFAULT_DISTANCE_METHOD,
    MATCHED_EVENTS_PATH,
    NOAA_STORM_EVENTS_URL,
    STORM_EVENTS_GLOB,
    TOP_N_CITIES,
)
from data_loader import prepare_storm_events, select_top_cities
from nearest_city import DISTANCE_METHODS, INDEX_TYPES, InvalidInput, attach_nearest_city
from schemas import MatchedEventSchema

logger = logging.getLogger("build_matched_events")

DOWNLOAD_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 30


def setup_logging(level: int = logging.INFO) -> None:
    """Configure a console handler for the build."""
    root = logging.getLogger()
    root.setLevel(level)
    # Avoid adding multiple handlers if already set
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s - %(message)s", "%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)


def resolve_storm_events_url(year: int) -> str:
    """
    Finds the current details file for `year` in the NCEI directory listing.
    NCEI re-issues the files with a new creation date suffix, so the name
    cannot be hard-coded.
    """
    response = requests.get(NOAA_STORM_EVENTS_URL, timeout=60)
    response.raise_for_status()
    pattern = re.compile(rf"StormEvents_details-ftp_v1\.0_d{year}_c(\d{{8}})\.csv\.gz")
    matches = sorted(set(pattern.findall(response.text)))
    if not matches:
        raise FileNotFoundError(f"No Storm Events details file listed for {year}")
    # The latest creation date wins
    return f"{NOAA_STORM_EVENTS_URL}StormEvents_details-ftp_v1.0_d{year}_c{matches[-1]}.csv.gz"


def download_storm_events(year: int, dest_dir: str = DATA_DIR) -> str | None:
    """Downloads one year of Storm Events details with retries. Returns the local path."""
    os.makedirs(dest_dir, exist_ok=True)
    for attempt in range(DOWNLOAD_ATTEMPTS):
        try:
            url = resolve_storm_events_url(year)
            response = requests.get(url, timeout=300)
            response.raise_for_status()
            path = os.path.join(dest_dir, url.rsplit("/", 1)[-1])
            with open(path, "wb") as f:
                f.write(response.content)
            logger.info("Downloaded %s (%d bytes)", os.path.basename(path), len(response.content))
            return path
        except (requests.RequestException, FileNotFoundError) as e:
            logger.warning("Attempt %d failed for %d: %s", attempt + 1, year, e)
            if attempt < DOWNLOAD_ATTEMPTS - 1:  # Don't sleep on the last attempt
                logger.info("Retrying in %d seconds...", RETRY_DELAY_SECONDS)
                time.sleep(RETRY_DELAY_SECONDS)

    logger.error("Could not download Storm Events details for %d after %d attempts", year, DOWNLOAD_ATTEMPTS)
    return None


def build_matched_events(
    events_glob: str = STORM_EVENTS_GLOB,
    cities_path: str = CITIES_PATH,
    top_n: int = TOP_N_CITIES,
    method: str = DEFAULT_DISTANCE_METHOD,
    index: str = "brute",
    workers: int = 1,
) -> pd.DataFrame:
    """Loads, cleans and matches the storm events. Raises on any fatal condition."""
    files = sorted(glob.glob(events_glob))
    if not files:
        raise FileNotFoundError(f"No storm events files match {events_glob}")

    dfs = []
    for file in files:
        logger.info("Reading %s", os.path.basename(file))
        dfs.append(pd.read_csv(file, encoding="latin1", on_bad_lines="skip", low_memory=False))
    events = prepare_storm_events(pd.concat(dfs, ignore_index=True))

    cities = select_top_cities(pd.read_csv(cities_path), top_n)
    logger.info("Matching %d events against the top %d cities (%s, %s)", len(events), len(cities), method, index)

    start = time.perf_counter()
    matched = attach_nearest_city(events, cities, method=method, index=index, workers=workers)
    logger.info("Matching finished in %.1f s", time.perf_counter() - start)

    return MatchedEventSchema.validate(matched)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Assign every storm event its nearest top-N city.")
    parser.add_argument("--events", default=STORM_EVENTS_GLOB, help="Glob of Storm Events details CSV files.")
    parser.add_argument("--cities", default=CITIES_PATH, help="City reference CSV (simplemaps layout).")
    parser.add_argument("--output", default=MATCHED_EVENTS_PATH, help="Parquet file to write.")
    parser.add_argument("--top-n", type=int, default=TOP_N_CITIES, help="Number of candidate cities.")
    parser.add_argument("--method", choices=sorted(DISTANCE_METHODS), default=DEFAULT_DISTANCE_METHOD)
    parser.add_argument("--index", choices=list(INDEX_TYPES), default="brute")
    parser.add_argument("--workers", type=int, default=1, help="Worker threads for matching.")
    parser.add_argument("--download", type=int, nargs="*", metavar="YEAR", default=[],
                        help="Download these years from NCEI before building.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main function to build the matched events file.
    This script is designed to be run by an automated process or by hand.
    """
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger.info("--- Starting Matched Events Build ---")

    for year in args.download:
        if download_storm_events(year) is None:
            logger.error("--- FATAL: Download failed for %d. Aborting. ---", year)
            return 1

    try:
        matched = build_matched_events(args.events, args.cities, args.top_n, args.method, args.index, args.workers)
    except (FileNotFoundError, InvalidInput, ValueError, SchemaError, SchemaErrors) as e:
        logger.error("--- FATAL: %s ---", e)
        return 1

    os.makedirs(os.path.dirname(args.output) or ".", exist_ok=True)
    matched.to_parquet(args.output)

    logger.info("--- Matched Events Build Complete ---")
    logger.info("Data saved to %s (%d events, %d cities)", args.output, len(matched), matched["NEAREST_CITY"].nunique())
    return 0


if __name__ == "__main__":
    sys.exit(main())
