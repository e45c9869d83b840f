import sys

# Argument parsing
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from loguru import logger

from ht.build.tile_builder import build_tiles_batch
from ht.config.settings import Settings
from ht.engine.errors import HeatTileError
from ht.layer.heatmap_layer import HeatmapLayer
from ht.model.tile import geographic_tile_grid, web_mercator_tile_grid
from ht.storage.storage import create_storage
from ht.utils.utils import parse_zoom_levels, read_json


def get_args(argv: Optional[List[str]] = None) -> Namespace:
    """Reads command line arguments and returns a Namespace object with them

    Returns:
        Namespace: Namespace object with the command line arguments
    """
    parser = ArgumentParser(
        prog='heattile',
        description='Render a scalar grid image (e.g. temperature) into heatmap or matrix map tiles'
    )

    parser.add_argument(
        "image",
        help="Grid image; the red channel holds the raw 0-255 samples"
    )

    parser.add_argument(
        "-o", "--output",
        dest="output",
        default=None,
        help="Output directory for the tile tree"
    )

    parser.add_argument(
        "-z", "--zoom",
        dest="zoom",
        default=None,
        help="Zoom levels, e.g. '3', '0-4' or '2,5'"
    )

    parser.add_argument(
        "-m", "--mode",
        choices=["heatmap", "matrix"],
        dest="mode",
        default=None,
        help="Render mode"
    )

    parser.add_argument(
        "-c", "--compression",
        type=int,
        dest="compression",
        default=None,
        help="Pixels per sampled block"
    )

    parser.add_argument(
        "--schema",
        dest="schema",
        default=None,
        help="JSON file with [[breakpoint, color], ...]"
    )

    parser.add_argument(
        "-s", "--settings",
        dest="settings",
        default=None,
        help="YAML settings file"
    )

    parser.add_argument(
        "-w", "--workers",
        type=int,
        dest="workers",
        default=None,
        help="Number of parallel workers"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        dest="verbose",
        help="Debug logging"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables
    load_dotenv('.env')
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    try:
        settings = Settings(args.settings)
        config = settings.layer_config(
            mode=args.mode,
            compression=args.compression,
            color_schema=read_json(args.schema) if args.schema else None,
        )
        if settings("tiler.tile_grid", default="web_mercator") == "geographic":
            tile_grid = geographic_tile_grid(settings("tiler.max_zoom", default=21), config.tile_size)
        else:
            tile_grid = web_mercator_tile_grid(settings("tiler.max_zoom", default=22), config.tile_size)

        layer = HeatmapLayer(config, tile_grid=tile_grid, name=settings("output.layer", default="heatmap"))
        layer.load_image(Path(args.image), data_bbox=config.data_bbox, render_bbox=config.render_bbox)

        zoom_levels = parse_zoom_levels(args.zoom or settings("tiler.zoom_levels", default="0-2"))
        storage = create_storage(container=args.output or settings("output.dir", default="tiles"))

        report = build_tiles_batch(
            layer=layer,
            storage=storage,
            zoom_levels=zoom_levels,
            skip_empty=settings("tiler.skip_empty", default=True),
            max_workers=args.workers or settings("tiler.max_workers", default=4),
        )
    except (HeatTileError, ValueError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    logger.info(f"Tiles written to {storage.root} ({report.written} tiles)")
    return 1 if report.failed else 0


# Main
if __name__ == '__main__':
    sys.exit(main())
