# Script that applies pending changes of a Nominatim database to the index
from argparse import ArgumentParser
import logging

from place_indexer.backends import IndexBackend
from place_indexer.db.db import duckdb_connection
from place_indexer.nominatim import NominatimConnector, UpdateReconciler
from place_indexer.settings import settings

from pathlib import Path

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('--source', '-s', type=Path, default=settings.source_db_path)
    parser.add_argument('--index', '-i', type=Path, default=settings.index_db_path)
    parser.add_argument('--init', action='store_true', help='Create the change table and exit')
    parser.add_argument('--languages', '-l', nargs='+', default=settings.languages)
    parser.add_argument('--extra-tags', '-e', nargs='*', default=settings.extra_tags)
    args = parser.parse_args()

    with duckdb_connection(args.source) as con:
        connector = NominatimConnector(con, args.languages)
        backend = IndexBackend.from_name('duckdb', db_path=args.index, extra_tags=args.extra_tags)
        reconciler = UpdateReconciler(connector, backend)

        if args.init:
            reconciler.init_updates()
        elif not reconciler.is_set_up_for_updates():
            logging.error('Source database is not set up for updates. Run with --init first.')
        else:
            stats = reconciler.update()
            logging.info(f'Update finished: {stats}')

        backend.close()
