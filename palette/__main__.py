"""
Palette Main Entry Point

    palette run story.txt --mode ai-generated --target 6 > breakdown.json
    palette run song.txt --lyrics --treatments
    palette serve --port 8000
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from palette.core.config import load_config, set_config
from palette.core.constants import DetectionMode, DocumentKind, MediaKind, RunStatus
from palette.core.exceptions import ConfigurationError, InsufficientCreditsError, PaletteError
from palette.core.logging_config import LogLevel, get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="palette",
        description="Palette - shot breakdowns for stories and song lyrics"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Break a document down into shots and print JSON")
    run.add_argument("file", type=str, help="Story or lyrics text file ('-' for stdin)")
    run.add_argument("--lyrics", action="store_true", help="Treat the document as song lyrics")
    run.add_argument("--title", type=str, default="", help="Document title")
    run.add_argument("--project", type=str, default="cli", help="Project id recorded on the run")
    run.add_argument(
        "--mode",
        choices=[mode.value for mode in DetectionMode],
        default=DetectionMode.EXISTING.value,
        help="Unit detection mode (default: existing)"
    )
    run.add_argument("--target", type=int, help="Target unit count for ai-generated and hybrid modes")
    run.add_argument("--shots", type=int, help="Target shots per unit")
    run.add_argument("--style", type=str, help="Director style hint, e.g. 'Wes Anderson'")
    run.add_argument("--notes", type=str, default="", help="Director notes")
    run.add_argument("--no-camera", action="store_true", help="Minimize camera style language")
    run.add_argument("--no-color", action="store_true", help="Minimize color palette language")
    run.add_argument("--title-cards", action="store_true", help="Generate title cards per unit")
    run.add_argument("--treatments", action="store_true", help="Generate music video treatments (lyrics)")
    run.add_argument("--artist", type=str, default="", help="Performing artist (lyrics)")
    run.add_argument(
        "--media",
        choices=[kind.value for kind in MediaKind],
        help="Render media for each unit's first shots"
    )
    run.add_argument("--output", "-o", type=str, help="Write JSON here instead of stdout")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Port for the API server")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def _read_document(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _print_progress(update) -> None:
    print(f"[{update.current}/{update.total}] {update.message}", file=sys.stderr)


async def _run_breakdown(args, config) -> int:
    from palette.core.retry import RetryConfig
    from palette.llm.media import MediaClient
    from palette.llm.providers import create_provider
    from palette.llm.structured import StructuredGenerator
    from palette.pipelines.breakdown_pipeline import BreakdownPipeline
    from palette.storyboard.models import InputDocument, RunOptions

    logger = get_logger("main")

    retry_config = RetryConfig.from_settings(config.retry)
    generator = StructuredGenerator(
        create_provider(config.llm),
        retry_config=retry_config,
        timeout=config.pipeline.call_timeout,
    )
    media_client = MediaClient(config.media, retry_config=retry_config) if args.media else None
    pipeline = BreakdownPipeline(generator, config=config, media_client=media_client)

    document = InputDocument(
        text=_read_document(args.file),
        kind=DocumentKind.LYRICS if args.lyrics else DocumentKind.STORY,
        title=args.title,
    )
    options = RunOptions(
        detection_mode=DetectionMode(args.mode),
        target_unit_count=args.target,
        style=args.style,
        director_notes=args.notes,
        include_camera_style=not args.no_camera,
        include_color_palette=not args.no_color,
        target_shot_count=args.shots,
        title_cards=args.title_cards,
        generate_treatments=args.treatments,
        artist=args.artist,
        media_kind=MediaKind(args.media) if args.media else None,
    )

    try:
        run = await pipeline.run(args.project, document, options, progress_callback=_print_progress)
    finally:
        if media_client is not None:
            await media_client.close()

    output = json.dumps(run.to_dict(), indent=2)
    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        logger.info(f"Wrote run {run.run_id} to {args.output}")
    else:
        print(output)

    for unit in run.failed_units:
        status = run.unit_status[unit.unit_id]
        logger.warning(f"{unit.unit_id} {status.state.value}: {status.reason}")
    return 1 if run.status == RunStatus.FAILED else 0


def main(argv=None) -> int:
    """Main entry point for the palette command."""
    args = build_parser().parse_args(argv)

    if args.debug:
        log_level = LogLevel.DEBUG
    elif args.verbose:
        log_level = LogLevel.INFO
    else:
        log_level = LogLevel.WARNING
    setup_logging(level=log_level, verbose=args.verbose)
    logger = get_logger("main")

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigurationError as e:
        logger.error(f"Could not load config: {e}")
        return 2
    set_config(config)

    if args.command == "serve":
        from palette.api.main import start_server
        start_server(host=args.host, port=args.port, reload=args.reload)
        return 0

    try:
        return asyncio.run(_run_breakdown(args, config))
    except (ConfigurationError, InsufficientCreditsError) as e:
        logger.error(str(e))
        return 2
    except (OSError, PaletteError) as e:
        logger.error(f"Run failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
