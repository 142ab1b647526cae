# Script that imports a Nominatim database into the index or into a dump file
from argparse import ArgumentParser
import logging

from place_indexer.backends import Importer
from place_indexer.db.db import duckdb_connection
from place_indexer.nominatim import NominatimConnector, import_from_source
from place_indexer.settings import settings

from pathlib import Path

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('--source', '-s', type=Path, default=settings.source_db_path)
    parser.add_argument('--backend', '-b', type=str, default='duckdb', choices=['duckdb', 'json'])
    parser.add_argument('--output', '-o', type=str, default=None,
                        help="Index database or dump file ('-' for stdout)")
    parser.add_argument('--countries', '-c', nargs='+', default=settings.country_codes)
    parser.add_argument('--languages', '-l', nargs='+', default=settings.languages)
    parser.add_argument('--extra-tags', '-e', nargs='*', default=settings.extra_tags)
    args = parser.parse_args()

    with duckdb_connection(args.source) as con:
        connector = NominatimConnector(con, args.languages)
        connector.prepare_database()

        if args.backend == 'json':
            importer = Importer.from_name('json', path=args.output or settings.dump_path,
                                          extra_tags=args.extra_tags,
                                          import_date=connector.get_last_import_date())
        else:
            importer = Importer.from_name('duckdb', db_path=args.output or settings.index_db_path,
                                          extra_tags=args.extra_tags)

        total = import_from_source(connector, importer, args.countries)
        logging.info(f'Imported {total} documents')
