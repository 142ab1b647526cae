# Script that restores a dump file into the index
from argparse import ArgumentParser
import logging

from place_indexer.backends import IndexBackend, JsonDumpReader
from place_indexer.settings import settings

from pathlib import Path

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('--dump', '-d', type=Path, default=settings.dump_path)
    parser.add_argument('--index', '-i', type=Path, default=settings.index_db_path)
    parser.add_argument('--countries', '-c', nargs='+', default=settings.country_codes)
    parser.add_argument('--languages', '-l', nargs='+', default=None,
                        help='Only keep names in these languages (default: keep all)')
    parser.add_argument('--extra-tags', '-e', nargs='*', default=None,
                        help='Only keep these extra tags (default: keep all)')
    args = parser.parse_args()

    backend = IndexBackend.from_name('duckdb', db_path=args.index)
    reader = JsonDumpReader(args.dump, backend)
    import_date = reader.read_header()
    logging.info(f'Restoring dump with data from {import_date.isoformat()}')

    total = reader.read_data(args.countries, args.languages, args.extra_tags)
    backend.close()
    logging.info(f'Restored {total} documents')
