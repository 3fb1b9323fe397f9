# petrd/cli.py
"""Command-line entry point.

    petrd validate -i FILE
    petrd extract  -i FILE [-o DIR] [-p PREFIX] [--noupdate]
    petrd mrac2mu  -i DICOMDIR -o OUTFILE [--orient CODE] [--head]
                   [--params JSON] [--scanner mmr|signa]

Exit status is 0 on success and 1 on any failure; every failure is logged.
"""
from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional, Union

from petrd import __version__
from petrd.config import DEFAULT_MUMAP_PARAMS, Config, MuMapParameters, ensure_output_dir
from petrd.containers import ContentType, RawContainer, create_container
from petrd.exceptions import MuMapError, OrientationError, PetRDError, StructuralError
from petrd.mumap import SCANNER_BED_POSITION, MuMapPipeline
from petrd.orientation import DEFAULT_ORIENTATION
from petrd.ptd import FileStatus, PtdContainer, validate_ptd

logger = logging.getLogger(__name__)

Container = Union[RawContainer, PtdContainer]


def _setup_logging(verbose: bool, log_name: Optional[str], cfg: Config) -> Optional[logging.Handler]:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=cfg.LOG_FORMAT, datefmt=cfg.LOG_DATEFMT)
    root = logging.getLogger()
    root.setLevel(level)

    if not log_name:
        return None
    handler = logging.FileHandler(Path.cwd() / log_name)
    handler.setFormatter(logging.Formatter(cfg.LOG_FORMAT, datefmt=cfg.LOG_DATEFMT))
    root.addHandler(handler)
    return handler


def _check_input_file(src: Path) -> bool:
    if not src.exists():
        logger.error(f"Input file {src} does not exist!")
        return False
    if src.is_dir():
        logger.error(f"{src} is a directory, not a file!")
        return False
    return True


def _open_dicom_container(src: Path, cfg: Config) -> Optional[RawContainer]:
    """DICOM container for ``src``; None if unrecognised. Raises StructuralError."""
    container = create_container(src, cfg=cfg)
    if container is None:
        logger.info(f"{src.name} is not a recognised raw data file")
    return container


# ----------------------------
# validate
# ----------------------------

def cmd_validate(args: argparse.Namespace, cfg: Config) -> int:
    src = Path(args.input)
    if not _check_input_file(src):
        return 1

    try:
        container = _open_dicom_container(src, cfg)
    except StructuralError as e:
        logger.info(str(e))
        container = None

    if container is not None:
        valid = container.is_valid()
    else:
        logger.info("Trying to read as Siemens .ptd file")
        valid = validate_ptd(src, cfg) == FileStatus.GOOD

    if valid:
        logger.info("File is VALID")
        return 0
    logger.info("File is INVALID")
    return 1


# ----------------------------
# extract
# ----------------------------

def _extract(container: Container, src: Path, out_dir: Path, prefix: str, update: bool) -> bool:
    name_src = src.with_name(prefix + src.suffix) if prefix else src
    data_dst = out_dir / container.std_file_name(name_src, ContentType.RAW_DATA)
    hdr_dst = out_dir / container.std_file_name(name_src, ContentType.HEADER)

    outputs = [data_dst, hdr_dst] if container.has_interfile_header else [data_dst]
    for dst in outputs:
        if dst.exists():
            logger.error(f"Output file already exists: {dst}")
            logger.error("Refusing to over-write!")
            return False

    if not container.extract_data(data_dst):
        logger.error("Unable to extract raw data")
        return False

    if not container.has_interfile_header:
        return container.extract_header(hdr_dst)

    if not container.extract_header(hdr_dst):
        logger.error("Unable to extract header")
        return False

    if update:
        if not container.modify_header(hdr_dst, data_dst):
            logger.error("Unable to update header")
            return False
        logger.info(f"Header now points at {data_dst.name}")
    return True


def cmd_extract(args: argparse.Namespace, cfg: Config) -> int:
    src = Path(args.input)
    if not _check_input_file(src):
        return 1

    prefix = args.prefix or ""
    if prefix and Path(prefix).name != prefix:
        logger.error(f"Output prefix must be a plain file name, not a path: {prefix}")
        return 1

    try:
        container: Optional[Container] = _open_dicom_container(src, cfg)
        if container is None:
            return 1
    except StructuralError as e:
        logger.info(str(e))
        logger.info("Trying to read as Siemens .ptd file")
        container = PtdContainer(src, cfg)

    out_dir = Path(args.output) if args.output else src.parent
    try:
        ensure_output_dir(out_dir)
    except PermissionError as e:
        logger.error(str(e))
        return 1

    if not _extract(container, src, out_dir, prefix, not args.noupdate):
        return 1
    logger.info("Extraction complete")
    return 0


# ----------------------------
# mrac2mu
# ----------------------------

def cmd_mrac2mu(args: argparse.Namespace, cfg: Config) -> int:
    params = DEFAULT_MUMAP_PARAMS
    if args.params:
        try:
            params = MuMapParameters.from_json(Path(args.params))
        except (OSError, ValueError) as e:
            logger.error(f"Unable to read parameters from {args.params}: {e}")
            return 1
        logger.info(f"Reslice parameters: {params.to_dict()}")

    try:
        pipeline = MuMapPipeline(
            Path(args.input),
            orientation=args.orient,
            params=params,
            is_head=args.head,
            scanner=args.scanner,
        )
    except OrientationError as e:
        logger.error(str(e))
        logger.error("Failed to create MRAC converter!")
        return 1

    try:
        pipeline.read()
        pipeline.update()
        logger.info("Scaling and reslicing complete")
        pipeline.write(Path(args.output))
    except MuMapError as e:
        logger.error(str(e))
        return 1

    logger.info("Writing complete")
    return 0


# ----------------------------
# Parser
# ----------------------------

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-l", "--log", action="store_true", help="Also write a log file in the current directory.")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    parser = argparse.ArgumentParser(prog="petrd", description="PET/MR raw data tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", parents=[common], help="Check a raw data file is complete.")
    p.add_argument("-i", "--input", required=True, help="Input file (.dcm, .IMA or .ptd)")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("extract", parents=[common], help="Split a raw data file into header and data.")
    p.add_argument("-i", "--input", required=True, help="Input file (.dcm, .IMA or .ptd)")
    p.add_argument("-o", "--output", default="", help="Output directory (default: input directory)")
    p.add_argument("-p", "--prefix", default="", help="Output file name stem (default: input stem)")
    p.add_argument("--noupdate", action="store_true", help="Do not point the header at the extracted data file.")
    p.set_defaults(func=cmd_extract)

    p = sub.add_parser("mrac2mu", parents=[common], help="Convert an MRAC DICOM series to a mu-map.")
    p.add_argument("-i", "--input", required=True, help="Input DICOM directory")
    p.add_argument("-o", "--output", required=True, help="Output file (.hv writes Interfile)")
    p.add_argument("--orient", default=DEFAULT_ORIENTATION, help="Output orientation: RAI, RAS or LPS")
    p.add_argument("--head", action="store_true", help="Reslice onto the PET head geometry.")
    p.add_argument("--params", default="", help="JSON file with reslice parameters")
    p.add_argument("--scanner", choices=sorted(SCANNER_BED_POSITION), default="mmr")
    p.set_defaults(func=cmd_mrac2mu)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = Config()
    handler = _setup_logging(args.verbose, f"petrd-{args.command}.log" if args.log else None, cfg)

    start = time.time()
    logger.info(f"Started: {time.asctime()}")
    logger.info(f"Running 'petrd {args.command}' version: {__version__}")

    try:
        rc = args.func(args, cfg)
    except PetRDError as e:
        logger.error(str(e))
        rc = 1
    finally:
        logger.info(f"Time taken: {time.time() - start:.1f} seconds")
        logger.info(f"Ended: {time.asctime()}")
        if handler is not None:
            logging.getLogger().removeHandler(handler)
            handler.close()
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
