"""Command line driver: summarize the assets of one bundle."""

import argparse
import logging
from typing import Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import Pretty

from . import api
from .errors import UnityPackError

LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='unitypack', description='List the assets and objects of a Unity asset bundle.')
    parser.add_argument('path', help='Path to the .unity3d bundle.')
    parser.add_argument('--type', default='GameObject', help='Root type name of the objects to list (default: %(default)s).')
    parser.add_argument('--dump', action='store_true', help='Also print the decoded fields of every listed object.')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging, repeat for debug output.')
    return parser.parse_args(argv)


def setup_logging(verbose: int, console: Console):
    logging.basicConfig(
        level=LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)],
        format='%(message)s',
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )


def report(args: argparse.Namespace, console: Console, progress_console: Console | None):
    bundle = api.load(args.path, console=progress_console)
    try:
        console.print(f'Loaded assetbundle from {args.path}')
        count = api.num_assets(bundle)
        console.print(f'There are {count} asset(s) in the bundle')

        for i in range(count):
            asset = api.get_asset(bundle, i)
            name = api.asset_name(asset)
            console.print(f'Asset {i}: {name}')
            api.free_string(name)
            console.print(f'  {api.num_objects(asset, bundle)} object(s)')

            objects = api.objects_with_type(asset, bundle, args.type)
            for obj in objects:
                type_name = api.object_type(obj, asset, bundle)
                console.print(f'  {type_name} path_id={obj.path_id}')
                api.free_string(type_name)
                if args.dump:
                    console.print(Pretty(api.read_object(obj, asset, bundle)))
            api.free_object_array(objects)
    finally:
        api.destroy(bundle)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    console = Console(highlight=False, markup=False, emoji=False, soft_wrap=True)
    err_console = Console(stderr=True, highlight=False, markup=False, emoji=False, soft_wrap=True)
    setup_logging(args.verbose, err_console)

    try:
        report(args, console, err_console if args.verbose else None)
    except UnityPackError as e:
        err_console.print(f'{e.kind}: {e}')
        return 1
    return 0


__all__ = ['main', 'parse_args']
