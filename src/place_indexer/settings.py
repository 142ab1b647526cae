from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    source_db_path: Path = Path('nominatim.duckdb')
    index_db_path: Path = Path('index.duckdb')
    dump_path: Path = Path('dump.jsonl')
    languages: list[str] = ['en', 'de', 'fr', 'it']
    extra_tags: list[str] = []
    country_codes: list[str] = []
    batch_size: int = 5000

    class Config:
        env_prefix = "PLACE_INDEXER_"
        env_file   = ".env"

settings = Settings()
