import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .core import FaceAlbumsApp
from .database.db import DBManager
from .database.store import PhotoStore
from .exceptions import FaceAlbumsError
from .recognition.gateway import load_gateway
from .reporting import ReportGenerator
from . import config

def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file next to the database."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.LOG_FILENAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Face Albums: find known people in a photo library")
    p.add_argument("--db", type=Path, default=config.DEFAULT_DB_PATH, help=f"SQLite DB path (default: ./{config.DB_FILENAME})")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="Scan photos for known faces")
    s.add_argument("paths", type=Path, nargs="+", help="Files or directories to scan")
    s.add_argument("--gateway", required=True, help="Recognition gateway factory as module:callable")
    s.add_argument("--rescan", action="store_true", help="Ignore cached results and call the service again")
    s.add_argument("--limit", type=int, default=None, help="Max photos sent to the recognition service")
    s.add_argument("--filter", default=None, help="Regex a file name must match")
    s.add_argument("--min-confidence", type=float, default=config.MIN_CONFIDENCE)
    s.add_argument("--concurrency", type=int, default=config.SCAN_CONCURRENCY)
    s.add_argument("--extensions", nargs="+", default=sorted(config.PHOTO_EXTS))
    s.add_argument("--no-dir-cache", action="store_true", help="Re-read directories even if unchanged")
    s.add_argument("--verbose-items", action="store_true", help="Print the outcome of every photo")

    for name, help_text in (("approve", "Confirm a recognized person"),
                            ("reject", "Mark a recognition as wrong"),
                            ("add-match", "Add a person the service missed")):
        r = sub.add_parser(name, help=help_text)
        r.add_argument("--person", required=True)
        r.add_argument("--photo", type=Path, required=True)

    sub.add_parser("status", help="Show library statistics")

    rep = sub.add_parser("report", help="Write a CSV of a scan's matches")
    rep.add_argument("scan_id", type=int, nargs="?", default=None, help="Scan ID (default: last scan)")
    rep.add_argument("--output", type=Path, default=Path("face_report.csv"))
    rep.add_argument("--min-confidence", type=float, default=config.MIN_CONFIDENCE)

    dc = sub.add_parser("dircache", help="Directory cache maintenance")
    dc_sub = dc.add_subparsers(dest="dircache_command", required=True)
    dcc = dc_sub.add_parser("clear", help="Forget directories under a path")
    dcc.add_argument("prefix", type=Path)

    c = sub.add_parser("clear", help="Delete all photos and scans (persons are kept)")
    c.add_argument("--yes", action="store_true", help="Confirm deletion")

    args = p.parse_args(argv)
    if args.command == "scan":
        if args.limit is not None and args.limit < 1:
            p.error("--limit must be at least 1")
        if args.concurrency < 1:
            p.error("--concurrency must be at least 1")
    return args

def run_scan(app: FaceAlbumsApp, args):
    gateway = load_gateway(args.gateway)
    bar = None

    def on_start(total, limit):
        nonlocal bar
        bar = tqdm(total=limit if limit else total, desc="Scanning", unit="photo")

    def on_progress(progress):
        if bar is None:
            return
        # With a limit the bar tracks new scans, otherwise every processed photo.
        bar.n = progress.processed - progress.cached if args.limit else progress.processed
        bar.set_postfix(matched=progress.matched, cached=progress.cached, file=progress.current_photo[:30])

    def on_verbose(info):
        names = ", ".join(f"{m.person_name} ({m.confidence:.0f}%)" for m in info.matches) or "-"
        source = "cache" if info.from_cache else "new"
        tqdm.write(f"[{source}] {info.path}: {names}")

    try:
        result = app.scan(
            [p.resolve() for p in args.paths],
            gateway,
            force_rescan=args.rescan,
            new_scans_limit=args.limit,
            name_filter=args.filter,
            min_confidence=args.min_confidence,
            concurrency=args.concurrency,
            use_dir_cache=not args.no_dir_cache,
            extensions=args.extensions,
            on_start=on_start,
            on_progress=on_progress,
            on_verbose=on_verbose if args.verbose_items else None,
        )
    finally:
        if bar is not None:
            bar.close()

    stats = result.stats
    logging.info(f"Processed {stats.photos_processed} photos ({stats.photos_cached} cached, {stats.new_scans} new, {stats.failed} failed).")
    logging.info(f"Photos with matches: {stats.matches_found} ({stats.new_matched} new).")
    for name in sorted(result.person_photos):
        logging.info(f"  {name}: {len(result.person_photos[name])} photos")
    if result.created_persons:
        logging.info(f"New persons created from matches: {', '.join(p.name for p in result.created_persons)}")

def show_status(db_path: Path):
    with DBManager(db_path) as conn:
        stats = ReportGenerator(PhotoStore(conn)).summary()

    print(f"Photos:              {stats.total_photos}")
    print(f"  with recognitions: {stats.photos_with_matches}")
    print(f"Persons:             {stats.total_persons}")
    print(f"Corrections:         {stats.total_corrections} "
          f"(approved {stats.approved_count}, rejected {stats.rejected_count}, added {stats.false_negative_count})")
    if stats.last_scan:
        s = stats.last_scan
        state = f"completed in {s.duration_ms} ms" if s.completed_at else "incomplete"
        print(f"Last scan:           #{s.id} at {s.started_at}, {state}, "
              f"{s.photos_processed} processed, {s.photos_cached} cached, {s.matches_found} matched")

def main(argv=None):
    args = parse_args(argv)
    db_path = args.db.resolve()

    setup_logging(db_path.parent, args.verbose)
    logging.debug(f"Database: {db_path}")

    app = FaceAlbumsApp(db_path)

    try:
        if args.command == "scan":
            run_scan(app, args)
        elif args.command == "approve":
            app.approve(args.photo, args.person)
        elif args.command == "reject":
            app.reject(args.photo, args.person)
        elif args.command == "add-match":
            app.add_match(args.photo, args.person)
        elif args.command == "status":
            show_status(db_path)
        elif args.command == "report":
            with DBManager(db_path) as conn:
                ReportGenerator(PhotoStore(conn), args.min_confidence).write_scan_report(args.scan_id, args.output)
        elif args.command == "dircache":
            app.clear_directory_cache(args.prefix)
        elif args.command == "clear":
            if not args.yes:
                logging.error("Refusing to clear without --yes.")
                sys.exit(1)
            app.clear_all_photos()
    except FaceAlbumsError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except Exception:
        logging.exception(f"Fatal error during {args.command}.")
        sys.exit(1)

if __name__ == "__main__":
    main()
